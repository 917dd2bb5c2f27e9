# backend/univendor/api/v1/uploads.py
import mimetypes
import os
import re
import secrets
import shutil
import time
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from dotenv import load_dotenv
from univendor.api.deps import get_current_user
from univendor.db.models.user import User

load_dotenv()

router = APIRouter()

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
UPLOAD_URL_PREFIX = "/uploads"
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_EXTENSIONS = {"jpg", "png", "gif", "webp", "pdf", "txt", "doc", "docx"}


def _extension_for(file: UploadFile) -> str:
    filename = file.filename or ""
    if "." in filename:
        ext = filename.rsplit(".", 1)[1].lower()
    else:
        guessed_ext = mimetypes.guess_extension(file.content_type or "")
        ext = guessed_ext.lstrip(".").lower() if guessed_ext else ""

    if ext in ("jpe", "jpeg"):
        ext = "jpg"

    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail=f"File type not allowed: {ext or 'unknown'}")
    return ext


def save_upload_file(file: UploadFile, owner_id: int) -> str:
    """Writes the upload under UPLOAD_DIR and returns its public URL."""
    ext = _extension_for(file)
    os.makedirs(UPLOAD_DIR, exist_ok=True)

    stem = re.sub(r"[^A-Za-z0-9_-]+", "-", (file.filename or "file").rsplit(".", 1)[0]).strip("-")[:40] or "file"
    ts = int(time.time())
    new_filename = f"{owner_id}_{ts}_{secrets.token_hex(4)}_{stem}.{ext}"
    file_path = os.path.join(UPLOAD_DIR, new_filename)

    with open(file_path, "wb+") as buffer:
        shutil.copyfileobj(file.file, buffer)

    if os.path.getsize(file_path) > MAX_UPLOAD_BYTES:
        os.remove(file_path)
        raise HTTPException(status_code=413, detail="File too large")

    return f"{UPLOAD_URL_PREFIX}/{new_filename}"


@router.post("/upload")
async def upload_file(file: UploadFile = File(...), user: User = Depends(get_current_user)):
    """Stores a message attachment or profile image."""
    url = save_upload_file(file, user.id)
    return {
        "success": True,
        "url": url,
        "name": file.filename,
        "type": file.content_type,
    }
