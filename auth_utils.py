########################################################
# SPECPROBE - API Security Scanner                     #
# Licensed under AGPL-V3.0                             #
# Author: Perry Mertens pamsniffer@gmail.com (C) 2025  #
# version 1.0  19-10-2026                              #
########################################################
from __future__ import annotations
from typing import Any, Optional
import logging

import requests
import urllib3
from requests.adapters import HTTPAdapter

logger = logging.getLogger("auth_utils")

DEFAULT_POOL_SIZE = 4


class AuthConfigError(Exception):
    pass


# ----------------------- Funtion _apply_api_key ----------------------------#
def _apply_api_key(sess: requests.Session, config: Any) -> None:
    api_key = getattr(config, "api_key", None)
    if api_key:
        header = getattr(config, "api_key_header", None) or "X-API-Key"
        sess.headers[header] = api_key.strip()
        logger.debug("API key header applied: %s", header)


# ----------------------- Funtion _apply_mtls ----------------------------#
def _apply_mtls(sess: requests.Session, config: Any) -> None:
    cert = getattr(config, "client_cert", None)
    key = getattr(config, "client_key", None)
    if bool(cert) != bool(key):
        raise AuthConfigError("mTLS needs both a client certificate and a client key")
    if cert and key:
        sess.cert = (cert, key)
        logger.debug("mTLS client cert configured")


# ----------------------- Funtion _apply_proxy ----------------------------#
def _apply_proxy(sess: requests.Session, config: Any) -> None:
    proxy = getattr(config, "proxy", None)
    if not proxy:
        return
    pr = proxy if "://" in proxy else f"http://{proxy}"
    sess.proxies.update({"http": pr, "https": pr})
    logger.info("PROXY MODE ENABLED -> %s", pr)


# ----------------------- Funtion configure_session ----------------------------#
def configure_session(config: Any = None, pool_size: Optional[int] = None) -> requests.Session:
    """Session shared by every dynamic request of a run.

    Retries are disabled on the mounted adapter: a transport failure ends
    that call and is reported in its result.
    """
    sess = requests.Session()
    insecure = bool(getattr(config, "insecure", False))
    sess.verify = not insecure
    if insecure:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        logger.warning("TLS verification disabled (--insecure). Use only in test labs.")

    _apply_api_key(sess, config)
    _apply_mtls(sess, config)
    _apply_proxy(sess, config)

    size = pool_size or getattr(config, "threads", None) or DEFAULT_POOL_SIZE
    adapter = HTTPAdapter(pool_connections=size, pool_maxsize=size, max_retries=0)
    sess.mount("http://", adapter)
    sess.mount("https://", adapter)
    return sess
