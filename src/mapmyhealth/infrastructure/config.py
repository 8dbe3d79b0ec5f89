import os
import logging

from mapmyhealth.domain.models import CostWeights

try:
    import streamlit as st  # type: ignore
    _HAS_STREAMLIT = True
except Exception:
    _HAS_STREAMLIT = False

logger = logging.getLogger(__name__)


def get_secret(name: str, default: str | None = None) -> str | None:
    # Prefer Streamlit secrets if available
    if _HAS_STREAMLIT:
        try:
            if name in st.secrets:
                return str(st.secrets.get(name))
        except Exception:
            pass
    # Fallback to environment variables
    return os.environ.get(name, default)


def _get_int(name: str, default: int, minimum: int = 0) -> int:
    raw = get_secret(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s: %r; using %s", name, raw, default)
        return default
    if value < minimum:
        logger.warning("%s must be >= %s, got %s; using %s", name, minimum, value, default)
        return default
    return value


def _get_float(name: str, default: float) -> float:
    raw = get_secret(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid number for %s: %r; using %s", name, raw, default)
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = get_secret(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "yes", "y", "true", "on"}


class Settings:
    @property
    def content_pack_path(self) -> str | None:
        return get_secret("MAPMYHEALTH_CONTENT_PACK")

    @property
    def plan_depth(self) -> int:
        return _get_int("MAPMYHEALTH_PLAN_DEPTH", 2)

    @property
    def beam_width(self) -> int:
        return _get_int("MAPMYHEALTH_BEAM_WIDTH", 3, minimum=1)

    @property
    def top_k_actions(self) -> int:
        return _get_int("MAPMYHEALTH_TOP_K_ACTIONS", 3)

    @property
    def top_k_unknowns(self) -> int:
        return _get_int("MAPMYHEALTH_TOP_K_UNKNOWNS", 5)

    @property
    def use_activation(self) -> bool:
        return _get_bool("MAPMYHEALTH_USE_ACTIVATION", False)

    @property
    def cost_weights(self) -> CostWeights:
        defaults = CostWeights()
        return CostWeights(
            info_gain_weight=_get_float("MAPMYHEALTH_WEIGHT_INFO_GAIN", defaults.info_gain_weight),
            money=_get_float("MAPMYHEALTH_WEIGHT_MONEY", defaults.money),
            time_hours=_get_float("MAPMYHEALTH_WEIGHT_TIME_HOURS", defaults.time_hours),
            difficulty=_get_float("MAPMYHEALTH_WEIGHT_DIFFICULTY", defaults.difficulty),
            risk=_get_float("MAPMYHEALTH_WEIGHT_RISK", defaults.risk),
        )
