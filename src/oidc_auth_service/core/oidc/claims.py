"""Claims mapper.

Translates provider claims into a UserData record according to the
declarative rules in ClaimsMappingConfig. Pure: no I/O, no mutation of input.
"""

from typing import Any, Mapping, Optional

from oidc_auth_service.core.oidc.errors import InvalidClaim, MissingRequiredClaim
from oidc_auth_service.domain.models import ClaimsMappingConfig, UserData

_MISSING = object()


def _lookup(claims: Mapping[str, Any], path: Optional[str]) -> Any:
    """Resolve a claim name, following dots into nested objects.

    An exact top-level key wins over a dotted path, since some providers
    use URLs (which contain dots) as claim names.
    """
    if not path:
        return _MISSING
    if path in claims:
        return claims[path]

    value: Any = claims
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _as_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_string_list(claim: str, value: Any) -> list[str]:
    """Coerce a claim into a list of strings, keeping input order"""
    if value is _MISSING or value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        items = []
        for item in value:
            if isinstance(item, (dict, list)):
                raise InvalidClaim(claim, type(item).__name__)
            items.append(_as_string(item))
        return items
    raise InvalidClaim(claim, type(value).__name__)


def map_claims(claims: Mapping[str, Any], mapping: ClaimsMappingConfig) -> UserData:
    """Map raw provider claims to an internal user.

    Args:
        claims: User-info claims returned by the provider
        mapping: Claim mapping rules

    Returns:
        UserData for the authenticated user

    Raises:
        MissingRequiredClaim: If the username claim is absent or empty
        InvalidClaim: If an optional claim has an unusable type
    """
    username = _lookup(claims, mapping.username_claim)
    if not isinstance(username, str) or not username.strip():
        raise MissingRequiredClaim(mapping.username_claim)

    display_name = _lookup(claims, mapping.display_name_claim)
    if display_name is _MISSING or display_name is None or display_name == "":
        display_name = username
    elif not isinstance(display_name, str):
        display_name = _as_string(display_name)

    groups = _as_string_list(
        mapping.groups_claim or "", _lookup(claims, mapping.groups_claim)
    )

    policies = set(mapping.default_policies)
    policies.update(
        _as_string_list(mapping.policies_claim or "", _lookup(claims, mapping.policies_claim))
    )

    metadata: dict[str, str] = {}
    for key, claim in mapping.metadata.items():
        value = _lookup(claims, claim)
        if value is _MISSING or value is None:
            continue
        if isinstance(value, (list, tuple)):
            metadata[key] = ",".join(_as_string_list(claim, value))
        elif isinstance(value, dict):
            raise InvalidClaim(claim, "dict")
        else:
            metadata[key] = _as_string(value)

    return UserData(
        username=username,
        display_name=display_name,
        policies=frozenset(policies),
        metadata=metadata,
        groups=tuple(groups),
    )
