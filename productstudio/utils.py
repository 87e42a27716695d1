import base64
from typing import Optional, Union

from .schemas import GenerationMode

DEFAULT_BASE_NAME = "produto"


def is_image_mime(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.lower().startswith("image/")


def build_download_filename(original_filename: Optional[str], mode: GenerationMode) -> str:
    """
    Build the name offered when the user downloads the displayed image.

    Args:
        original_filename (str): Name of the uploaded source file, if any.
        mode (GenerationMode): Mode the batch was generated with.

    Returns:
        str: ``{base}-{mode}-editado.jpeg`` where ``base`` is the source name
        without its last extension. Names without an extension fall back to
        ``produto``.
    """
    name = (original_filename or "").rsplit("/", 1)[-1].rsplit("\\", 1)[-1]
    base = name.rsplit(".", 1)[0] if "." in name else ""
    base = base or DEFAULT_BASE_NAME
    return f"{base}-{mode.value}-editado.jpeg"


def decode_image_data(data: Union[bytes, str]) -> bytes:
    # Some SDK paths hand back base64 text instead of raw bytes.
    if isinstance(data, str):
        return base64.b64decode(data)
    return data
