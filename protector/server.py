import json
import time
import logging
from dataclasses import dataclass
from typing import Callable

from flask import Blueprint, Flask, current_app, jsonify, redirect, request
from werkzeug.exceptions import HTTPException

from .admission import AdmissionPipeline
from .codec import SymmetricCodec
from .config import Settings
from .errors import (
    AuthError,
    InternalError,
    MethodNotAllowed,
    NotFoundError,
    PayloadTooLarge,
    ProtectorError,
    RateLimited,
    ValidationError,
)
from .heartbeat import SessionRegistry, SignedStatusPatcher, Sweeper
from .relay import Relay, is_discord_webhook_url
from .signing import verify
from .store import RecordStore

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

bp = Blueprint("protector", __name__)


@dataclass
class ProtectorState:
    settings: Settings
    pipeline: AdmissionPipeline
    relay: Relay
    registry: SessionRegistry
    sweeper: Sweeper
    clock: Callable[[], float]


def state() -> ProtectorState:
    return current_app.extensions["protector"]


def client_ip() -> str:
    # first X-Forwarded-For hop is the original client
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or "unknown"


def json_body() -> dict:
    body = request.get_json(silent=True, force=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Payload must be a JSON object")
    return body


def serialized_size(payload) -> int:
    return len(json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


@bp.route("/")
def home():
    return redirect(state().settings.home_url)


@bp.route("/health")
def health():
    return jsonify({"status": "ok"})


@bp.route("/hit/", defaults={"identifier": None}, methods=ALL_METHODS)
@bp.route("/hit/<identifier>", methods=ALL_METHODS)
def hit(identifier):
    if request.method != "POST":
        raise MethodNotAllowed()
    if not identifier:
        raise ValidationError("Missing id")

    st = state()
    payload = json_body()
    ip = client_ip()

    # oversized bodies are refused without touching any counter
    if serialized_size(payload) > st.settings.max_payload_bytes:
        raise PayloadTooLarge()

    decision = st.pipeline.admit(ip, identifier, payload, st.clock())
    if not decision.accepted:
        raise RateLimited(decision.reason, decision.message)

    status, text = st.relay.forward(identifier, payload, request.args.to_dict())
    return jsonify({"status": status, "response": text}), status


@bp.route("/register-webhook", methods=ALL_METHODS)
def register_webhook():
    if request.method != "POST":
        raise MethodNotAllowed()
    body = json_body()
    identifier = state().relay.register(body.get("owner_discord_id"), body.get("webhook_url"))
    return jsonify({"id": identifier})


@bp.route("/status-patch", methods=ALL_METHODS)
def status_patch():
    if request.method not in ("POST", "PATCH"):
        raise MethodNotAllowed()

    st = state()
    secret = st.settings.status_shared_secret
    if not secret:
        logger.error("status-patch called without STATUS_SHARED_SECRET configured")
        return jsonify({"error": "STATUS_SHARED_SECRET not set"}), 500

    raw_body = request.get_data(as_text=True)
    timestamp = request.headers.get("x-status-timestamp")
    signature = request.headers.get("x-status-signature")
    if not verify(timestamp, raw_body, signature, secret):
        raise AuthError()

    try:
        body = json.loads(raw_body or "{}")
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    vault_id = body.get("vault_id") or body.get("vaultId")
    message_id = body.get("message_id") or body.get("messageId")
    embeds = body.get("embeds")
    if not vault_id or not message_id or not isinstance(embeds, list):
        raise ValidationError("vault_id, message_id, embeds required")

    if len(raw_body.encode("utf-8")) > st.settings.max_payload_bytes:
        raise PayloadTooLarge()

    status, result = st.relay.patch_message(vault_id, message_id, embeds)
    return jsonify(result), status


@bp.route("/status/register", methods=["POST"])
def status_register():
    body = json_body()
    session_id = body.get("session_id")
    webhook = body.get("webhook") or body.get("vault_id") or body.get("webhook_url")
    message_id = body.get("message_id")
    if not session_id or not webhook or not message_id:
        raise ValidationError("session_id, webhook, message_id required")

    embed = body.get("embed")
    st = state()
    st.registry.register(
        str(session_id),
        webhook,
        message_id,
        channel_id=body.get("channel_id"),
        embed=embed if isinstance(embed, dict) else {},
        now=st.clock(),
    )
    return jsonify({"ok": True})


@bp.route("/status/ping/<session_id>", methods=["POST"])
def status_ping(session_id):
    st = state()
    if not st.registry.ping(session_id, st.clock()):
        raise NotFoundError("Unknown session")
    return jsonify({"ok": True})


def handle_protector_error(e: ProtectorError):
    if isinstance(e, InternalError):
        logger.error("%s: %s", type(e).__name__, e)
    return jsonify(e.to_dict()), e.status_code


def handle_http_error(e: HTTPException):
    return jsonify({"error": e.description or e.name}), e.code


def handle_unexpected(e: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.path)
    return jsonify({"error": "Internal error"}), 500


def create_app(settings=None, store=None, http=None, clock=time.time) -> Flask:
    settings = settings or Settings.from_env()

    codec = SymmetricCodec(settings.encryption_key)
    if store is None:
        store = RecordStore(settings.supabase_url, settings.supabase_service_key,
                            timeout=settings.upstream_timeout)
    relay = Relay(store, codec, timeout=settings.upstream_timeout, session=http)
    pipeline = AdmissionPipeline()

    remote_patch = None
    if settings.status_patch_url:
        remote_patch = SignedStatusPatcher(settings.status_patch_url, settings.status_shared_secret,
                                           timeout=settings.upstream_timeout, session=http)

    def on_timeout(session):
        # the remote endpoint only knows vault ids; raw webhook URLs are edited here
        if remote_patch is not None and not is_discord_webhook_url(session.webhook_key):
            remote_patch(session)
        else:
            relay.edit_to_disconnected(session.webhook_key, session.message_id, session.embed)

    registry = SessionRegistry(settings.heartbeat_timeout, on_timeout)
    sweeper = Sweeper(registry, settings.sweep_interval, pipeline=pipeline, clock=clock)

    app = Flask(__name__)
    app.extensions["protector"] = ProtectorState(
        settings=settings,
        pipeline=pipeline,
        relay=relay,
        registry=registry,
        sweeper=sweeper,
        clock=clock,
    )
    app.register_blueprint(bp)
    app.register_error_handler(ProtectorError, handle_protector_error)
    app.register_error_handler(HTTPException, handle_http_error)
    app.register_error_handler(Exception, handle_unexpected)

    if settings.sweep_enabled:
        sweeper.start()
    return app
