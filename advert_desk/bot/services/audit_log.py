# bot/services/audit_log.py
from __future__ import annotations

import inspect
import logging
import uuid
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from functools import wraps
from pathlib import Path
from typing import Any, ClassVar, Iterable, Mapping, MutableMapping, Optional, Sequence
from contextvars import ContextVar, Token

from advert_desk.db.database import DataBase
from advert_desk.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from advert_desk.bot.services.backend import BackendReadiness

REDACTED_FIELDS = frozenset({"password", "new_password", "token"})
REDACTED = "***"


class AuditLogService:
    """
    Centralised helper that stores every meaningful action in the ``audit_log`` table.

    The service normalises arbitrary payloads into JSON-friendly dictionaries, enriches
    them with call-site metadata and delegates persistence to :class:`advert_desk.db.database.DataBase`.
    Persistence is best effort: an audit write that fails is logged and dropped so the
    audited action keeps its own outcome.
    """

    _instance: ClassVar[Optional["AuditLogService"]] = None

    def __new__(cls) -> "AuditLogService":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return

        self._logger = logging.getLogger("advert_desk.audit")
        self._module_name = Path(__file__).name
        self._initialized = True
        # per-event actor context (identity string of the signed-in teacher, if any)
        self._actor_ctx: ContextVar[Optional[str]] = ContextVar("audit_actor", default=None)

    @property
    def _database(self) -> DataBase:
        return DataBase()

    async def log(
        self,
        *,
        action: str,
        actor: str | None = None,
        payload: Any | None = None,
        include_context: bool = True,
    ) -> Optional[AuditLogRead]:
        """
        Persist a low-level audit entry.

        :param action: short machine-readable label (``services.submission.create``…)
        :param actor: optional identity that initiated the action
        :param payload: arbitrary structure with details (will be serialised)
        :param include_context: whether to attach caller metadata automatically
        """
        payload_map = self._prepare_payload(payload)
        if include_context:
            payload_map.setdefault("_meta", {}).update(self._call_context())

        actor = actor if actor is not None else self.current_actor()

        if not BackendReadiness().is_ready:
            self._logger.info("AUDIT action=%s actor=%s (store not ready, not persisted)", action, actor or "-")
            return None

        try:
            entry = await self._database.create_audit_log(
                AuditLogCreate(action=action, actor=actor, payload=payload_map)
            )
        except Exception:
            self._logger.warning("AUDIT action=%s actor=%s not persisted", action, actor or "-", exc_info=True)
            return None

        self._logger.info(
            "AUDIT action=%s actor=%s entry=%s",
            action,
            actor or "-",
            entry.id,
        )
        return entry

    async def list_entries(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        actor: str | None = None,
        action: str | None = None,
    ) -> tuple[list[AuditLogRead], int]:
        """Return recent audit entries."""
        return await self._database.list_audit_logs(
            limit=limit,
            offset=offset,
            actor=actor,
            action=action,
        )

    # --------------
    # Actor context
    # --------------
    def bind_actor(self, actor: Optional[str]) -> Token:
        return self._actor_ctx.set(actor)

    def unbind_actor(self, token: Token) -> None:
        try:
            self._actor_ctx.reset(token)
        except ValueError:
            # token created in another context
            pass

    def current_actor(self) -> Optional[str]:
        return self._actor_ctx.get()

    def _prepare_payload(self, payload: Any | None) -> dict[str, Any]:
        if payload is None:
            return {}
        serialized = self._serialize(payload)
        if isinstance(serialized, dict):
            return dict(serialized)
        return {"value": serialized}

    def serialize(self, value: Any) -> Any:
        """Public helper for shared serialization logic."""
        return self._serialize(value)

    def _serialize(self, value: Any) -> Any:
        if value is None or isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, str):
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if is_dataclass(value) and not isinstance(value, type):
            return self._serialize(asdict(value))
        if isinstance(value, Mapping):
            return {
                str(k): (REDACTED if str(k) in REDACTED_FIELDS else self._serialize(v))
                for k, v in value.items()
            }
        if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
            return [self._serialize(v) for v in value]
        if hasattr(value, "model_dump"):
            try:
                return self._serialize(value.model_dump())
            except Exception:
                return str(value)
        return str(value)

    def _call_context(self) -> dict[str, Any]:
        stack = inspect.stack()
        for frame in stack[2:]:
            path = Path(frame.filename)
            if path.name != self._module_name:
                return {
                    "module": path.stem,
                    "location": f"{path.name}:{frame.lineno}",
                    "function": frame.function,
                }
        return {}


audit_logger = AuditLogService()


def _bound_arguments(
    signature: inspect.Signature,
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
    skip: int,
) -> dict[str, Any]:
    try:
        bound = signature.bind_partial(*args, **kwargs)
    except TypeError:
        return {"args": [str(a) for a in args[skip:]], "kwargs": sorted(kwargs)}
    names = list(signature.parameters)[:skip]
    return {k: v for k, v in bound.arguments.items() if k not in names}


def _wrap_async_callable(
    fn,
    action: str,
    *,
    skip_first_arg: bool,
    actor_fields: Iterable[str] | None,
):
    if getattr(fn, "__audit_wrapped__", False):
        return fn

    signature = inspect.signature(fn)
    skip_count = 1 if skip_first_arg else 0
    fields = tuple(actor_fields or ())

    @wraps(fn)
    async def wrapper(*args, **kwargs):
        arguments = _bound_arguments(signature, args, kwargs, skip_count)
        actor = next((str(arguments[f]) for f in fields if arguments.get(f)), None)
        payload: MutableMapping[str, Any] = {"arguments": audit_logger.serialize(arguments)}
        try:
            result = await fn(*args, **kwargs)
        except Exception as exc:
            payload["error"] = repr(exc)
            await audit_logger.log(action=f"{action}.error", actor=actor, payload=payload)
            raise
        payload["result"] = audit_logger.serialize(result)
        await audit_logger.log(action=action, actor=actor, payload=payload)
        return result

    wrapper.__audit_wrapped__ = True  # type: ignore[attr-defined]
    return wrapper


def instrument_service_class(
    cls,
    *,
    prefix: str | None = None,
    exclude: Iterable[str] | None = None,
    actor_fields: Iterable[str] | None = None,
) -> None:
    """Wrap public async methods of a service class to emit audit entries."""
    action_prefix = prefix or cls.__name__
    excluded = set(exclude or [])

    for name, attr in list(cls.__dict__.items()):
        if name.startswith("_") or name in excluded:
            continue
        if inspect.iscoroutinefunction(attr):
            setattr(cls, name, _wrap_async_callable(
                attr,
                f"{action_prefix}.{name}",
                skip_first_arg=True,
                actor_fields=actor_fields,
            ))


__all__ = [
    "AuditLogService",
    "audit_logger",
    "instrument_service_class",
]
