"""Centralized constants for the request gate.

Single source of truth for route classes and the fixed response headers.
"""

from typing import Dict, FrozenSet, Tuple

# =============================================================================
# ROUTE CLASSES
# =============================================================================

API_PREFIX = '/api/'

SIGNIN_PATH = '/auth/signin'

# Prefixes that require a valid session token
PROTECTED_PREFIXES: Tuple[str, ...] = (
    '/dashboard',
    '/profile',
    '/settings',
    '/api/user',
    '/api/flights/search',
    '/api/user/search-history',
)

# Pages a signed-in user is bounced away from
AUTH_PAGES: FrozenSet[str] = frozenset([
    '/auth/signin',
    '/auth/signup',
])

# =============================================================================
# RESPONSE HEADERS
# =============================================================================

CONTENT_SECURITY_POLICY = '; '.join([
    "default-src 'self'",
    "script-src 'self' 'unsafe-eval' 'unsafe-inline' https://accounts.google.com",
    "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
    "font-src 'self' https://fonts.gstatic.com",
    "img-src 'self' data: https: blob:",
    "connect-src 'self' https://accounts.google.com https://www.googleapis.com",
    "frame-src 'self' https://accounts.google.com",
    "object-src 'none'",
    "base-uri 'self'",
    "form-action 'self'",
    "upgrade-insecure-requests",
])

SECURITY_HEADERS: Dict[str, str] = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'X-XSS-Protection': '1; mode=block',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains; preload',
    'Content-Security-Policy': CONTENT_SECURITY_POLICY,
}

CORS_ALLOW_METHODS = 'GET, POST, PUT, DELETE, OPTIONS'
CORS_ALLOW_HEADERS = 'Content-Type, Authorization'
