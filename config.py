import os

PORT = int(os.getenv("PORT", "8080"))
HOST = os.getenv("HOST", "0.0.0.0")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

MODEL_PATH = os.getenv("MODEL_PATH", "models/model.onnx")
# Download variant: when a bucket is configured the object is fetched to MODEL_PATH first
MODEL_BUCKET = os.getenv("MODEL_BUCKET") or None
MODEL_OBJECT_KEY = os.getenv("MODEL_OBJECT_KEY", "model.onnx")
STORAGE_ENDPOINT_URL = os.getenv("STORAGE_ENDPOINT_URL") or None

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
PREDICTIONS_COLLECTION = os.getenv("PREDICTIONS_COLLECTION", "predictions")

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", "1000000"))
MULTIPART_OVERHEAD_BYTES = int(os.getenv("MULTIPART_OVERHEAD_BYTES", "65536"))
