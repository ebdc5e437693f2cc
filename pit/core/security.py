# pit/core/security.py
"""
口令摘要（passlib 的 PBKDF2 原语）：

key = Base64(PBKDF2-HMAC-SHA256(password, secret, 4096, 32))

没有按用户加盐，进程级 secret 是唯一的盐；更换 secret 会使所有已存摘要失效，
需要离线批量重算。"""

import base64

from passlib.crypto.digest import pbkdf2_hmac
from passlib.utils import consteq

DIGEST = "sha256"
ROUNDS = 4096
KEY_LEN = 32


def hash_password(password: str, secret: bytes) -> str:
    dk = pbkdf2_hmac(DIGEST, password.encode("utf-8"), secret, ROUNDS, KEY_LEN)
    return base64.b64encode(dk).decode("ascii")


def digests_match(given: str, stored: str) -> bool:
    return consteq(given.encode("utf-8"), stored.encode("utf-8"))
