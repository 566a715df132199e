import os
import uuid

from flask import current_app

ALLOWED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.webp'}


def save_uploaded_image(image):
    """Store an uploaded image under a random name and return that name.

    Returns None when no file was sent, the extension is not allowed, or the
    file could not be written.
    """
    if image is None or not image.filename:
        return None

    ext = os.path.splitext(image.filename)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        current_app.logger.warning('Ignoring upload %r: extension not allowed', image.filename)
        return None

    filename = f'{uuid.uuid4()}{ext}'
    folder = current_app.config['UPLOAD_FOLDER']
    try:
        os.makedirs(folder, exist_ok=True)
        image.save(os.path.join(folder, filename))
    except OSError:
        current_app.logger.exception('Image upload failed')
        return None
    return filename


def delete_uploaded_image(filename):
    if not filename:
        return
    path = os.path.join(current_app.config['UPLOAD_FOLDER'], filename)
    if os.path.exists(path):
        os.remove(path)
