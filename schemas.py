from pydantic import BaseModel, Field
from typing import Literal, Optional

CANCER = "Cancer"
NON_CANCER = "Non-cancer"

SUGGESTIONS = {
    CANCER: "Segera periksa ke dokter!",
    NON_CANCER: "Penyakit kanker tidak terdeteksi.",
}


class PredictionRecord(BaseModel):
    """Predictions collection schema
    Collection name: "predictions", document id = `id`
    """
    id: str = Field(..., description="Randomly generated unique identifier")
    result: Literal["Cancer", "Non-cancer"] = Field(..., description="Predicted class label")
    suggestion: str = Field(..., description="Advice derived from the label")
    createdAt: str = Field(..., description="ISO timestamp when prediction was made")


class ApiResponse(BaseModel):
    status: Literal["success", "fail"]
    message: str
    data: Optional[PredictionRecord] = None
