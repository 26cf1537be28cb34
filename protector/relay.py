"""Resolves public webhook ids and talks to Discord on their behalf."""
import re
import copy
import json
import secrets
import logging
from urllib.parse import urlparse, quote

import requests

from .errors import NotFoundError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)

DISCORD_HOST = re.compile(r"(^|\.)(discord\.com|discordapp\.com)$")
WEBHOOK_PATH = re.compile(r"^/api/webhooks/\d+/[\w-]+")

STATUS_FIELD = "Status"
DISCONNECTED = "🔴 Disconnected"


def is_discord_webhook_url(url) -> bool:
    # must look like https://discord.com/api/webhooks/<id>/<token>
    if not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        return False
    if parsed.scheme not in ("https", "http") or not parsed.hostname:
        return False
    return bool(DISCORD_HOST.search(parsed.hostname)) and bool(WEBHOOK_PATH.match(parsed.path))


def is_url(value) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("https", "http") and bool(parsed.netloc)


def new_identifier() -> str:
    return "wh_" + secrets.token_hex(9)


def disconnected_embed(template) -> dict:
    """Copy of ``template`` with its Status field set to disconnected."""
    embed = copy.deepcopy(template) if isinstance(template, dict) else {}
    fields = embed.get("fields")
    if not isinstance(fields, list):
        fields = []
    for field in fields:
        if isinstance(field, dict) and field.get("name") == STATUS_FIELD:
            field["value"] = DISCONNECTED
            break
    else:
        fields.append({"name": STATUS_FIELD, "value": DISCONNECTED, "inline": True})
    embed["fields"] = fields
    return embed


def _json_or_raw(resp):
    try:
        return resp.json()
    except ValueError:
        return {"raw": resp.text}


class Relay:
    def __init__(self, store, codec, timeout: float = 10.0, session=None):
        self.store = store
        self.codec = codec
        self.timeout = timeout
        self.http = session or requests.Session()

    def register(self, owner_id, webhook_url) -> str:
        if not owner_id or not webhook_url:
            raise ValidationError("owner_discord_id and webhook_url are required")
        if not is_url(webhook_url):
            raise ValidationError("Invalid URL")
        if not is_discord_webhook_url(webhook_url):
            raise ValidationError("Not a valid Discord webhook URL")

        identifier = new_identifier()
        self.store.insert(identifier, str(owner_id), self.codec.seal(webhook_url))
        logger.info("registered webhook %s for owner %s", identifier, owner_id)
        return identifier

    def resolve(self, identifier) -> str:
        sealed = self.store.fetch_sealed(identifier)
        if not sealed:
            raise NotFoundError("Unknown webhook id")
        return self.codec.open(sealed)

    def forward(self, identifier, payload, params=None):
        """POST ``payload`` to the real webhook. Returns Discord's status and body text."""
        url = self.resolve(identifier)
        try:
            resp = self.http.post(
                url,
                data=json.dumps(payload),
                params=params or None,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"discord forward failed for {identifier}: {e}") from e
        return resp.status_code, resp.text

    def patch_message(self, identifier, message_id, embeds):
        url = self.resolve(identifier)
        resp = self._patch(url, message_id, embeds)
        return resp.status_code, _json_or_raw(resp)

    def edit_to_disconnected(self, webhook_key, message_id, embed_template) -> None:
        if is_discord_webhook_url(webhook_key):
            url = webhook_key
        else:
            url = self.resolve(webhook_key)

        resp = self._patch(url, message_id, [disconnected_embed(embed_template)])
        if not resp.ok:
            raise UpstreamError(
                f"disconnect edit of message {message_id} returned {resp.status_code}: {resp.text}"
            )

    def _patch(self, url, message_id, embeds):
        target = f"{url.rstrip('/')}/messages/{quote(str(message_id), safe='')}"
        try:
            return self.http.patch(
                target,
                data=json.dumps({"embeds": embeds}),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise UpstreamError(f"discord patch failed for message {message_id}: {e}") from e
