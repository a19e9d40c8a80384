import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

import inference
import model_loader
from config import (
    CORS_ORIGINS,
    HOST,
    LOG_LEVEL,
    MAX_UPLOAD_BYTES,
    MODEL_BUCKET,
    MODEL_OBJECT_KEY,
    MODEL_PATH,
    MULTIPART_OVERHEAD_BYTES,
    PORT,
    STORAGE_ENDPOINT_URL,
)
from database import PredictionStore, get_prediction_store, new_prediction_record
from model_loader import ModelHandle, ModelStatus
from schemas import ApiResponse
from upload_gate import (
    NO_IMAGE_MESSAGE,
    MissingImage,
    PayloadTooLarge,
    UploadLimitMiddleware,
    read_upload,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Model is predicted successfully"
PREDICTION_ERROR_MESSAGE = "Terjadi kesalahan dalam melakukan prediksi"
MODEL_NOT_READY_MESSAGE = "Model is not ready yet"


def fail(status_code: int, message: str) -> JSONResponse:
    body = ApiResponse(status="fail", message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def get_model_handle(request: Request) -> ModelHandle:
    return request.app.state.model_handle


def get_store(request: Request) -> Optional[PredictionStore]:
    return request.app.state.store


def create_app(
    model_handle: Optional[ModelHandle] = None,
    store: Optional[PredictionStore] = None,
    load_on_startup: bool = True,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        handle = app.state.model_handle
        if load_on_startup and handle.state.status is ModelStatus.LOADING:
            # serve immediately; /predict answers 503 until the task finishes
            app.state.model_task = asyncio.create_task(
                model_loader.load(
                    handle,
                    MODEL_PATH,
                    bucket=MODEL_BUCKET,
                    object_key=MODEL_OBJECT_KEY,
                    endpoint_url=STORAGE_ENDPOINT_URL,
                )
            )
        yield
        task = app.state.model_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    app = FastAPI(title="Cancer Prediction API", lifespan=lifespan)
    app.state.model_handle = model_handle or ModelHandle()
    app.state.store = store
    app.state.model_task = None

    # added last so CORS is outermost and early 413s carry its headers
    app.add_middleware(
        UploadLimitMiddleware,
        max_body_size=MAX_UPLOAD_BYTES + MULTIPART_OVERHEAD_BYTES,
        max_upload_size=MAX_UPLOAD_BYTES,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return fail(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # the only accepted input is the `image` file field
        logger.info("Rejected request: %s", exc.errors())
        return fail(400, NO_IMAGE_MESSAGE)

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "Server is running"

    @app.get("/health")
    async def health(model_handle: ModelHandle = Depends(get_model_handle)):
        return {"status": "ok", "model": model_handle.state.status.value}

    @app.post("/predict", status_code=201)
    async def predict(
        image: Optional[UploadFile] = File(None),
        model_handle: ModelHandle = Depends(get_model_handle),
        store: Optional[PredictionStore] = Depends(get_store),
    ):
        try:
            content = await read_upload(image, MAX_UPLOAD_BYTES)
        except MissingImage:
            return fail(400, NO_IMAGE_MESSAGE)
        except PayloadTooLarge as e:
            return fail(413, e.detail)

        state = model_handle.state
        if state.status is ModelStatus.LOADING:
            return fail(503, MODEL_NOT_READY_MESSAGE)

        try:
            if state.status is not ModelStatus.READY:
                raise RuntimeError(f"Model unavailable: {state.reason}")
            label = await run_in_threadpool(inference.predict, state.model, content)
            record = new_prediction_record(label)
            if store is None:
                store = get_prediction_store()
            await run_in_threadpool(store.save, record)
        except Exception:
            logger.exception("Prediction failed")
            return fail(400, PREDICTION_ERROR_MESSAGE)

        body = ApiResponse(status="success", message=SUCCESS_MESSAGE, data=record)
        return JSONResponse(status_code=201, content=body.model_dump())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
