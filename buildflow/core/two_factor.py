"""
TOTP two-factor authentication (RFC 6238) and recovery codes
"""
import hashlib
import re
import secrets
import string

import pyotp
from django.conf import settings
from django.utils import timezone

TOKEN_PATTERN = re.compile(r'^\d{6}$')
RECOVERY_CODE_PATTERN = re.compile(r'^[A-Z0-9]{8}$')
RECOVERY_CODE_ALPHABET = string.ascii_uppercase + string.digits
RECOVERY_CODE_LENGTH = 8


def generate_secret():
    return pyotp.random_base32()


def provisioning_uri(secret, account_name):
    """otpauth:// URI for authenticator apps"""
    return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=settings.TWO_FACTOR_ISSUER)


def verify_token(secret, token):
    """Check a 6 digit TOTP token, allowing one 30 second step of drift either way"""
    if not secret or token is None:
        return False
    token = str(token).strip()
    if not TOKEN_PATTERN.match(token):
        return False
    return pyotp.TOTP(secret).verify(token, valid_window=1)


def normalize_recovery_code(code):
    return str(code or '').strip().replace('-', '').upper()


def hash_recovery_code(code):
    return hashlib.sha256(normalize_recovery_code(code).encode()).hexdigest()


def generate_recovery_codes(count=None):
    count = count or settings.TWO_FACTOR_RECOVERY_CODE_COUNT
    return [
        ''.join(secrets.choice(RECOVERY_CODE_ALPHABET) for _ in range(RECOVERY_CODE_LENGTH))
        for _ in range(count)
    ]


def consume_recovery_code(user, code):
    """Remove a matching recovery code from the user. Returns True on a match."""
    code = normalize_recovery_code(code)
    if not RECOVERY_CODE_PATTERN.match(code):
        return False
    hashed = hash_recovery_code(code)
    remaining = list(user.recovery_codes or [])
    for stored in remaining:
        if secrets.compare_digest(stored, hashed):
            remaining.remove(stored)
            user.recovery_codes = remaining
            user.save(update_fields=['recovery_codes', 'updated_at'])
            return True
    return False


def start_setup(user):
    """Store a fresh secret and recovery codes. 2FA stays disabled until verified."""
    secret = generate_secret()
    codes = generate_recovery_codes()
    user.two_factor_secret = secret
    user.recovery_codes = [hash_recovery_code(code) for code in codes]
    user.save(update_fields=['two_factor_secret', 'recovery_codes', 'updated_at'])
    return {
        'secret': secret,
        'qr_code_url': provisioning_uri(secret, user.email),
        'recovery_codes': codes,
    }


def enable(user):
    user.two_factor_enabled = True
    user.two_factor_verified_at = timezone.now()
    user.save(update_fields=['two_factor_enabled', 'two_factor_verified_at', 'updated_at'])


def disable(user):
    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.recovery_codes = []
    user.two_factor_verified_at = None
    user.save(update_fields=['two_factor_enabled', 'two_factor_secret', 'recovery_codes',
                             'two_factor_verified_at', 'updated_at'])


def verify_code(user, token=None, recovery_code=None):
    """Accept either a TOTP token or an unused recovery code"""
    if token:
        return verify_token(user.two_factor_secret, token)
    if recovery_code:
        return consume_recovery_code(user, recovery_code)
    return False


def status_for(user):
    return {
        'enabled': user.two_factor_enabled,
        'verified_at': user.two_factor_verified_at,
        'recovery_codes_remaining': len(user.recovery_codes or []),
    }
