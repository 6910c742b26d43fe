# healthpass/config.py
import os

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./healthpass.db")

JWT_SECRET = os.environ.get("HEALTHPASS_JWT_SECRET", "dev-secret-key")
JWT_ALG = os.environ.get("HEALTHPASS_JWT_ALG", "HS256")

# how long a freshly issued share QR stays valid
SHARE_TOKEN_VALIDITY_DAYS = int(os.environ.get("SHARE_TOKEN_VALIDITY_DAYS", "7"))

QR_BOX_SIZE = int(os.environ.get("QR_BOX_SIZE", "10"))
QR_BORDER = int(os.environ.get("QR_BORDER", "4"))
SCANNER_CAMERA_INDEX = int(os.environ.get("SCANNER_CAMERA_INDEX", "0"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
