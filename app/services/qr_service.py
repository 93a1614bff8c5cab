"""
QR code generation service
"""

import io
import qrcode

from app.core.config import settings

class QRService:
    """Service for generating the QR codes guests scan to reach the camera"""

    @staticmethod
    def get_camera_url(event_id: str) -> str:
        """Get the URL that the QR code will redirect to"""
        return f"{settings.BASE_URL}/event/{event_id}/camera"

    @staticmethod
    def generate_event_qr(event_id: str, format: str = 'PNG') -> bytes:
        """Generate QR code for the event camera page"""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(QRService.get_camera_url(event_id))
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format=format)

        return buffer.getvalue()
