"""
Custom hooks for drf-spectacular to customize OpenAPI schema.
"""
from django.conf import settings


def keep_token_auth_only(result, generator, request, public):
    """Drop auto-detected session/basic schemes, keep only the token scheme from settings."""
    schemes = settings.SPECTACULAR_SETTINGS['APPEND_COMPONENTS']['securitySchemes']
    if 'components' in result and 'securitySchemes' in result['components']:
        result['components']['securitySchemes'] = dict(schemes)
    return result
