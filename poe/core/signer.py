"""
Signed Origins

Uses Ed25519 to authenticate callers.
An actor's identity IS their base64 public key, so a verified signature
turns an untrusted request into a verified caller.

The registry itself never sees signatures. The host verifies them and
passes the caller on as an opaque string.
"""

import base64
from typing import Optional, Tuple

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .hasher import Hasher


class Signer:
    """
    Ed25519 signing for registry calls.

    A call message is the canonical hash of:
        {"call": <name>, "caller": <public key>, "claim": <bytes>,
         "nonce": <int>, "receiver": <public key>?}

    The nonce is the caller's account nonce at the host, so a captured
    signature cannot be replayed.
    """

    @staticmethod
    def generate_keypair() -> Tuple[str, str]:
        """
        Generate a new Ed25519 keypair.

        Returns:
            Tuple of (private_key_b64, public_key_b64)
        """
        signing_key = SigningKey.generate()
        verify_key = signing_key.verify_key

        private_b64 = base64.b64encode(bytes(signing_key)).decode("utf-8")
        public_b64 = base64.b64encode(bytes(verify_key)).decode("utf-8")

        return private_b64, public_b64

    @staticmethod
    def public_key_for(private_key_b64: str) -> str:
        """Derive the account id (base64 public key) from a private key."""
        signing_key = SigningKey(base64.b64decode(private_key_b64))
        return base64.b64encode(bytes(signing_key.verify_key)).decode("utf-8")

    @staticmethod
    def sign(message: str, private_key_b64: str) -> str:
        """Sign a message; returns the base64 signature."""
        signing_key = SigningKey(base64.b64decode(private_key_b64))
        signed = signing_key.sign(message.encode("utf-8"))
        return base64.b64encode(signed.signature).decode("utf-8")

    @staticmethod
    def verify(message: str, signature_b64: str, public_key_b64: str) -> bool:
        """
        Verify an Ed25519 signature.

        Malformed keys or signatures count as invalid.
        """
        try:
            verify_key = VerifyKey(base64.b64decode(public_key_b64, validate=True))
            signature_bytes = base64.b64decode(signature_b64, validate=True)
            verify_key.verify(message.encode("utf-8"), signature_bytes)
            return True
        except (BadSignatureError, ValueError, TypeError):
            return False

    @staticmethod
    def call_message(
        call: str,
        caller: str,
        claim: bytes,
        nonce: int,
        receiver: Optional[str] = None,
    ) -> str:
        """Canonical hash a caller signs for one call."""
        return Hasher.hash_data({
            "call": call,
            "caller": caller,
            "claim": bytes(claim),
            "nonce": nonce,
            "receiver": receiver,
        })

    @classmethod
    def sign_call(
        cls,
        call: str,
        private_key_b64: str,
        claim: bytes,
        nonce: int,
        receiver: Optional[str] = None,
    ) -> Tuple[str, str]:
        """
        Sign a call as the owner of private_key_b64.

        Returns:
            Tuple of (caller, signature_b64)
        """
        caller = cls.public_key_for(private_key_b64)
        message = cls.call_message(call, caller, claim, nonce, receiver)
        return caller, cls.sign(message, private_key_b64)

    @classmethod
    def verify_call(
        cls,
        call: str,
        caller: str,
        claim: bytes,
        nonce: int,
        signature_b64: str,
        receiver: Optional[str] = None,
    ) -> bool:
        """True if caller signed exactly this call with this nonce."""
        message = cls.call_message(call, caller, claim, nonce, receiver)
        return cls.verify(message, signature_b64, caller)
