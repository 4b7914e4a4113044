from __future__ import annotations

import asyncio
import secrets

from passlib.hash import argon2

TEMP_PASSWORD_LENGTH = 12
# Visually ambiguous glyphs (0/O, 1/l/I) are left out.
TEMP_PASSWORD_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZabcdefghijkmnpqrstuvwxyz23456789!@#$%&*"
DEFAULT_ROUNDS = 3


class PasswordHasher:
    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        self._scheme = argon2.using(rounds=rounds)

    def hash(self, password: str) -> str:
        return self._scheme.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        return self._scheme.verify(password, password_hash)

    async def hash_async(self, password: str) -> str:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.verify, password, password_hash)


def generate_temp_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))
