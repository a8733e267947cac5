"""
Report image utilities: validation with Pillow and storage keys.
"""
import uuid

from django.conf import settings
from django.core.files.storage import default_storage
from django.utils import timezone
from PIL import Image, UnidentifiedImageError

from apps.core.exceptions import ValidationError

ALLOWED_CONTENT_TYPES = {'image/jpeg', 'image/jpg', 'image/png'}
ALLOWED_FORMATS = {'JPEG', 'PNG'}


def generate_object_key(prefix: str, filename: str) -> str:
    """
    Generate unique object key for report storage.

    Args:
        prefix: Folder prefix (e.g., 'reports/<patient_id>')
        filename: Original filename

    Returns:
        Unique object key string
    """
    unique_id = uuid.uuid4().hex[:12]
    safe_filename = "".join(c for c in filename if c.isalnum() or c in "._-") or 'image'
    return f"{prefix}/{unique_id}_{safe_filename}"


def validate_report_image(uploaded_file):
    """
    Check type, size and that the bytes really are a JPEG or PNG.

    Returns:
        Pillow format name ('JPEG' or 'PNG')

    Raises:
        ValidationError
    """
    content_type = (getattr(uploaded_file, 'content_type', '') or '').lower()
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            f'{uploaded_file.name}: only JPEG and PNG images are allowed',
            operation='attach_image',
        )

    max_bytes = settings.RECORD_IMAGE_MAX_BYTES
    if uploaded_file.size > max_bytes:
        raise ValidationError(
            f'{uploaded_file.name}: file size must be at most {max_bytes // (1024 * 1024)}MB',
            operation='attach_image',
        )

    try:
        uploaded_file.seek(0)
        with Image.open(uploaded_file) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValidationError(f'{uploaded_file.name}: file is not a valid image', operation='attach_image')
    finally:
        uploaded_file.seek(0)

    if image_format not in ALLOWED_FORMATS:
        raise ValidationError(
            f'{uploaded_file.name}: only JPEG and PNG images are allowed',
            operation='attach_image',
        )
    return image_format


def store_report_image(record, uploaded_file):
    """
    Save ``uploaded_file`` under reports/<patient_id>/ and return its reference.
    """
    key = generate_object_key(f'reports/{record.patient_id}', uploaded_file.name)
    stored_path = default_storage.save(key, uploaded_file)
    return {
        'path': stored_path,
        'file_name': uploaded_file.name,
        'content_type': uploaded_file.content_type,
        'size': uploaded_file.size,
        'uploaded_at': timezone.now().isoformat(),
    }


def report_image_url(path):
    """URL for a stored report image (signed when served from MinIO)."""
    return default_storage.url(path)
