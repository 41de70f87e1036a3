from __future__ import annotations

import copy
import json
import logging
import random
from typing import Any, Dict, Iterable, Optional

from ..core.ports import DecisionLogSink

REDACTED = "[REDACTED]"

DEFAULT_REDACTED_ATTRS = ("password", "token", "secret", "email", "phone")


class DecisionLogger(DecisionLogSink):
    """Audit sink that writes one log record per permission decision.

    Args:
        sample_rate: probability in [0, 1] of emitting a decision.
        as_json: emit ``json.dumps(payload)`` instead of ``"decision {payload}"``.
        level: logging level of the emitted records.
        smart_sampling: when True, deny decisions are always logged and
            ``sample_rate`` applies to allows only.
        redact_attrs: subject attribute names whose values are replaced with
            ``[REDACTED]``; ``use_default_redactions`` picks DEFAULT_REDACTED_ATTRS
            when this is not given.
        max_attrs_bytes: if the serialized subject attributes exceed this size
            (after redaction) they are replaced by ``{"_truncated": True, "size": n}``.
        logger_name: name of the stdlib logger, ``abacx.audit`` by default.
    """

    def __init__(
        self,
        *,
        sample_rate: float = 1.0,
        as_json: bool = False,
        level: int = logging.INFO,
        smart_sampling: bool = False,
        redact_attrs: Optional[Iterable[str]] = None,
        use_default_redactions: bool = False,
        max_attrs_bytes: Optional[int] = None,
        logger_name: str = "abacx.audit",
    ) -> None:
        self.sample_rate = max(0.0, min(1.0, float(sample_rate)))
        self.as_json = as_json
        self.level = level
        self.smart_sampling = smart_sampling
        if redact_attrs is None and use_default_redactions:
            redact_attrs = DEFAULT_REDACTED_ATTRS
        self.redact_attrs = frozenset(redact_attrs or ())
        self.max_attrs_bytes = max_attrs_bytes
        self.logger = logging.getLogger(logger_name)

    def _sampled(self, payload: Dict[str, Any]) -> bool:
        if self.smart_sampling and payload.get("decision") == "deny":
            return True
        if self.sample_rate >= 1.0:
            return True
        if self.sample_rate <= 0.0:
            return False
        return random.random() < self.sample_rate

    def _prepare(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.redact_attrs and self.max_attrs_bytes is None:
            return payload
        out = copy.deepcopy(payload)
        subject = out.get("subject")
        attrs = subject.get("attrs") if isinstance(subject, dict) else None
        if not isinstance(attrs, dict):
            return out
        for key in self.redact_attrs:
            if key in attrs:
                attrs[key] = REDACTED
        if self.max_attrs_bytes is not None:
            size = len(json.dumps(attrs, ensure_ascii=False, default=str).encode("utf-8"))
            if size > self.max_attrs_bytes:
                subject["attrs"] = {"_truncated": True, "size": size}
        return out

    def log(self, payload: Dict[str, Any]) -> None:
        if not self._sampled(payload):
            return
        data = self._prepare(payload)
        if self.as_json:
            self.logger.log(self.level, json.dumps(data, ensure_ascii=False, default=str))
        else:
            self.logger.log(self.level, "decision %s", data)


__all__ = ["DecisionLogger", "DEFAULT_REDACTED_ATTRS", "REDACTED"]
