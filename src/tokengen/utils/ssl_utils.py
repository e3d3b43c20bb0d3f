"""SSL certificate handling for calls to the identity provider.

Corporate networks often intercept TLS with a private CA that is present in
the OS certificate store but not in the bundle shipped with requests. The
truststore package injects the native store into Python's SSL context, which
MSAL's HTTP client then picks up.
"""

import logging
import platform

import truststore

logger = logging.getLogger(__name__)

_ssl_initialized = False


def init_ssl(enabled: bool = True) -> bool:
    """
    Use the OS native certificate store for HTTPS, once per process.

    Must run before the first HTTPS connection is opened.

    Args:
        enabled: Skip injection entirely when False

    Returns:
        True if the native store is in use, False otherwise.
    """
    global _ssl_initialized

    if not enabled:
        logger.debug("System truststore disabled, using bundled certificates")
        return False
    if _ssl_initialized:
        return True

    try:
        truststore.inject_into_ssl()
    except Exception as e:
        logger.warning(f"Failed to inject truststore: {e}")
        return False

    _ssl_initialized = True
    logger.debug(f"SSL truststore injected for {platform.system()}")
    return True
