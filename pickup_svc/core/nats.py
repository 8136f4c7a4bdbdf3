from __future__ import annotations
import json
import logging
from typing import Sequence
from nats.aio.client import Client as NATS
from .config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()
_nats = NATS()

async def nats_connect():
    if not _nats.is_connected:
        servers: Sequence[str] = [u.strip() for u in _settings.nats_urls.split(",") if u.strip()]
        await _nats.connect(servers=servers)

async def nats_close():
    try:
        if _nats.is_connected:
            await _nats.drain()
    except Exception:
        logger.warning("nats drain failed", exc_info=True)

async def publish_json(subject: str, evt: dict):
    """
    evt = {
      "title": str,
      "body": str,
      "data": {...},
      "sentAt": iso8601
    }
    """
    await nats_connect()
    await _nats.publish(subject, json.dumps(evt).encode("utf-8"))
