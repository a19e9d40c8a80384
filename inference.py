from io import BytesIO

import numpy as np
from PIL import Image

from schemas import CANCER, NON_CANCER, SUGGESTIONS

MODEL_INPUT_SIZE = (224, 224)  # width, height
THRESHOLD = 0.5


class InvalidImage(ValueError):
    pass


def resize_bilinear(arr: np.ndarray, size) -> np.ndarray:
    """Plain bilinear sampling, no antialiasing, corners not aligned.

    Output pixel (y, x) samples the source at (y * in_h / out_h, x * in_w / out_w).
    """
    out_w, out_h = size
    in_h, in_w = arr.shape[:2]
    ys = np.arange(out_h) * (in_h / out_h)
    xs = np.arange(out_w) * (in_w / out_w)

    y0 = np.floor(ys).astype(np.int64)
    x0 = np.floor(xs).astype(np.int64)
    y1 = np.minimum(y0 + 1, in_h - 1)
    x1 = np.minimum(x0 + 1, in_w - 1)
    wy = (ys - y0)[:, None, None]
    wx = (xs - x0)[None, :, None]

    src = arr.astype(np.float32)
    top = src[y0][:, x0] * (1 - wx) + src[y0][:, x1] * wx
    bottom = src[y1][:, x0] * (1 - wx) + src[y1][:, x1] * wx
    return (top * (1 - wy) + bottom * wy).astype(np.float32)


def preprocess_image(file_bytes: bytes, channels_first: bool = False) -> np.ndarray:
    try:
        img = Image.open(BytesIO(file_bytes))
        img = img.convert("RGB")
    except Exception as e:
        raise InvalidImage(f"Cannot decode image: {e}") from e

    arr = resize_bilinear(np.asarray(img), MODEL_INPUT_SIZE)  # HWC, raw pixel values
    if channels_first:
        arr = np.transpose(arr, (2, 0, 1))
    return np.expand_dims(arr, 0)


def label_for(score: float) -> str:
    # strictly greater: 0.5 itself is Non-cancer
    return CANCER if score > THRESHOLD else NON_CANCER


def suggestion_for(label: str) -> str:
    return SUGGESTIONS[label]


def predict(model, file_bytes: bytes) -> str:
    """Decode, resize, batch and classify one image; returns the label."""
    batch = preprocess_image(file_bytes, channels_first=getattr(model, "channels_first", False))
    score = model.predict(batch)
    return label_for(score)
