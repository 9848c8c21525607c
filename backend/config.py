"""
Configuration settings for the FOR-ATA-057 report engine.
"""

import os

# Base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Database configuration (supports Docker override via environment variable)
DATABASE_PATH = os.getenv('DATABASE_PATH', os.path.join(BASE_DIR, 'inspections.db'))
DATABASE_URL = f'sqlite:///{DATABASE_PATH}'

os.makedirs(os.path.dirname(DATABASE_PATH), exist_ok=True) if os.path.dirname(DATABASE_PATH) else None

# Report branding
REPORT_LOGO_PATH = os.getenv('REPORT_LOGO_PATH', '')
REPORT_FONT_PATH = os.getenv('REPORT_FONT_PATH', '')  # TTF with the checkmark glyph; Helvetica when empty

# Signature image loading
SIGNATURE_FETCH_TIMEOUT = float(os.getenv('SIGNATURE_FETCH_TIMEOUT', '10'))
SIGNATURE_MAX_WORKERS = int(os.getenv('SIGNATURE_MAX_WORKERS', '4'))
SIGNATURE_MAX_BYTES = int(os.getenv('SIGNATURE_MAX_BYTES', str(5 * 1024 * 1024)))  # 5MB

# Operator text for observations derived from a non-compliant checklist item with no remark
DERIVED_OBSERVATION_TEXT = os.getenv('DERIVED_OBSERVATION_TEXT', 'item not compliant')
