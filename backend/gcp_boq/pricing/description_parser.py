"""
SKU description parser.

Turns a free-text Cloud Billing SKU description such as
"N1 Predefined Instance Core running in Americas" or
"Commitment v1: N2 Cpu in Americas for 3 Year" into a normalized attribute set.

The parser is a fixed, ordered list of independent rules. Each rule looks at
the same lower-cased description and returns the fields it detected; the
reducer keeps the first value seen for every field except ``category``, which
later rules may override, and ``tags``, which accumulate. Rule order is part
of the contract: storage, GPU and network detection always run, even when a
machine family was already recognised.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import structlog

from gcp_boq.config import EngineConfig

logger = structlog.get_logger()


FAMILY_PREFIXES = (
    "n1", "n2", "n2d", "e2", "c2", "c2d", "c3", "m1", "m2", "m3",
    "f1", "g1", "g2", "a2", "a3", "t2d", "t2a",
)

# Longest prefixes first so "n2d-" is not read as "n2" + "d-..."
_FAMILY_RE = re.compile(
    r"\b(" + "|".join(sorted(FAMILY_PREFIXES, key=len, reverse=True)) + r")-[a-z0-9]+(?:-[a-z0-9]+)*"
)
_VCPU_RE = re.compile(r"(\d+)\s*vcpu")
_MEMORY_RE = re.compile(r"(\d+(?:\.\d+)?)\s*gb")
_GPU_RE = re.compile(r"(nvidia|tesla)[\s-]+((?:tesla[\s-]+)?[a-z0-9]+)")
_TOKEN_RE = re.compile(r"[a-z0-9]+")

USAGE_ON_DEMAND = "OnDemand"
USAGE_PREEMPTIBLE = "Preemptible"
USAGE_COMMITTED = "Committed"


@dataclass(frozen=True)
class AttributeSet:
    """Attributes extracted from one SKU description. Any field may be None."""
    category: str = "compute"
    machine_family: Optional[str] = None
    machine_type: Optional[str] = None
    resource_group: Optional[str] = None
    vcpu_count: Optional[int] = None
    memory_gb: Optional[float] = None
    disk_type: Optional[str] = None
    gpu_type: Optional[str] = None
    usage_type: str = USAGE_ON_DEMAND
    commitment_term: Optional[str] = None
    commitment_type: Optional[str] = None
    discount_percent: int = 0
    network_tier: Optional[str] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)


Rule = Callable[[str, Set[str], EngineConfig], Dict[str, Any]]


def _commitment_term(desc: str) -> Optional[str]:
    if "1-year" in desc or "1 year" in desc:
        return "1-year"
    if "3-year" in desc or "3 year" in desc:
        return "3-year"
    return None


def machine_rule(desc: str, tokens: Set[str], config: EngineConfig) -> Dict[str, Any]:
    match = _FAMILY_RE.search(desc)
    if not match:
        return {}
    family = match.group(1)
    return {
        "machine_family": family,
        "machine_type": match.group(0),
        "resource_group": f"{family.upper()}Standard",
        "tags": [f"family:{family}"],
    }


def vcpu_rule(desc: str, tokens: Set[str], config: EngineConfig) -> Dict[str, Any]:
    match = _VCPU_RE.search(desc)
    return {"vcpu_count": int(match.group(1))} if match else {}


def memory_rule(desc: str, tokens: Set[str], config: EngineConfig) -> Dict[str, Any]:
    match = _MEMORY_RE.search(desc)
    return {"memory_gb": float(match.group(1))} if match else {}


def disk_rule(desc: str, tokens: Set[str], config: EngineConfig) -> Dict[str, Any]:
    if "ssd" in desc:
        kind = "ssd"
    elif "balanced" in desc:
        kind = "balanced"
    elif "standard" in desc and tokens & {"disk", "storage"}:
        kind = "standard"
    else:
        return {}
    return {"disk_type": f"pd-{kind}", "category": "storage", "tags": [f"storage:{kind}"]}


def gpu_rule(desc: str, tokens: Set[str], config: EngineConfig) -> Dict[str, Any]:
    if not any(word in desc for word in ("gpu", "nvidia", "tesla")):
        return {}
    result: Dict[str, Any] = {"category": "gpu"}
    match = _GPU_RE.search(desc)
    if match:
        model = re.sub(r"[\s-]+", "-", match.group(2))
        gpu_type = f"{match.group(1)}-{model}"
        result["gpu_type"] = gpu_type
        result["tags"] = [f"gpu:{gpu_type}"]
    return result


def usage_rule(desc: str, tokens: Set[str], config: EngineConfig) -> Dict[str, Any]:
    # A commitment SKU is Committed even if it also mentions spot/preemptible
    if _commitment_term(desc) is None and ("preemptible" in desc or "spot" in desc):
        return {"usage_type": USAGE_PREEMPTIBLE, "tags": ["usage:preemptible"]}
    return {}


def commitment_rule(desc: str, tokens: Set[str], config: EngineConfig) -> Dict[str, Any]:
    term = _commitment_term(desc)
    if term is None:
        return {}
    percent = (
        config.cud_1_year_discount_percent if term == "1-year"
        else config.cud_3_year_discount_percent
    )
    return {
        "commitment_term": term,
        "usage_type": USAGE_COMMITTED,
        "commitment_type": "resource",
        "discount_percent": percent,
        "tags": [f"commitment:{term}"],
    }


def network_rule(desc: str, tokens: Set[str], config: EngineConfig) -> Dict[str, Any]:
    if "premium" in desc:
        tier = "premium"
    elif "standard" in desc and tokens & {"network", "egress", "ip"}:
        tier = "standard"
    else:
        return {}
    return {"network_tier": tier, "category": "network", "tags": [f"network:{tier}"]}


def scope_rule(desc: str, tokens: Set[str], config: EngineConfig) -> Dict[str, Any]:
    if "regional" in desc:
        return {"tags": ["scope:regional"]}
    if "global" in desc:
        return {"tags": ["scope:global"]}
    return {}


RULES: Tuple[Rule, ...] = (
    machine_rule,
    vcpu_rule,
    memory_rule,
    disk_rule,
    gpu_rule,
    usage_rule,
    commitment_rule,
    network_rule,
    scope_rule,
)

_OVERRIDABLE = {"category"}


def _reduce(contributions: List[Dict[str, Any]]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {"tags": []}
    for contribution in contributions:
        for key, value in contribution.items():
            if key == "tags":
                merged["tags"].extend(value)
            elif key in _OVERRIDABLE or merged.get(key) is None:
                merged[key] = value
    return merged


def parse(description: Optional[str], config: Optional[EngineConfig] = None) -> AttributeSet:
    """
    Parse a SKU description into an AttributeSet.

    Never raises: an empty or unrecognised description yields the default
    compute/OnDemand attribute set.

    Args:
        description: Free-text SKU description
        config: Engine configuration (commitment discount percentages)

    Returns:
        Extracted attributes
    """
    config = config or EngineConfig()
    desc = str(description or "").lower()
    tokens = set(_TOKEN_RE.findall(desc))

    merged = _reduce([rule(desc, tokens, config) for rule in RULES])
    classified = "category" in merged or merged.get("machine_family") is not None

    merged.setdefault("category", "compute")
    if merged.get("usage_type") is None:
        merged["usage_type"] = USAGE_ON_DEMAND
    merged["tags"] = tuple(merged["tags"])

    if not classified:
        logger.debug("description_unclassified", description=description)

    return AttributeSet(**merged)
