from enum import Enum


class KeyType(str, Enum):
    LOCKED = "LOCKED"
    REDLOCK = "REDLOCK"
    LIMITER = "LIMITER"


def derive_key(namespace: str, key: str, kind: KeyType) -> str:
    return f"{namespace}_{KeyType(kind).value}_{key}"


def key_prefix(namespace: str, kind: KeyType) -> str:
    return derive_key(namespace, "", kind)


def lock_key(namespace: str, key: str) -> str:
    return derive_key(namespace, key, KeyType.LOCKED)


def limiter_key(namespace: str, key: str) -> str:
    return derive_key(namespace, key, KeyType.LIMITER)


def mutex_key(namespace: str, key: str) -> str:
    return derive_key(namespace, key, KeyType.REDLOCK)


def scan_pattern(prefix: str) -> str:
    # SCAN MATCH is glob-style; keep the prefix literal
    escaped = "".join("\\" + ch if ch in "*?[]\\" else ch for ch in prefix)
    return escaped + "*"
