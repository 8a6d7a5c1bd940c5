"""Encrypted secrets file.

Values are stored as JSON, encrypted with a dedicated KMS key and
base64-encoded on disk, so the file can be committed alongside the code.
The key lives in its own stack, ``<context>-secrets``, created on first use.
"""

import base64
import json
import logging
import os

from stackwave.errors import ValidationError
from stackwave.redact import register_secret
from stackwave.refs import CloudTemplate, cf_ref, cf_sub
from stackwave.validation import require_resource_name

logger = logging.getLogger(__name__)

_REF_KEY = "key"
_REF_KEY_ALIAS = "key-alias"


class Secrets:
    """A set of secrets for one context (usually one stage).

    Args:
        context_name: resource name scoping the key and its stack
        file_path: path of the encrypted file
        ops: Operations used for encryption and the key stack
        defaults: values written when the file does not exist yet
    """

    def __init__(self, context_name, file_path, ops, defaults=None):
        require_resource_name(context_name, "Secrets.context_name")
        self.context_name = context_name
        self.file_path = file_path
        self.ops = ops
        self.defaults = dict(defaults or {})
        self.key_alias = f"{context_name}-secrets-key"
        self.stack_name = f"{context_name}-secrets"
        self._key_ready = False

    def key_template(self) -> CloudTemplate:
        template = CloudTemplate(self.stack_name, description=f"Secrets key for {self.context_name}")
        template.add_resource(
            _REF_KEY,
            "AWS::KMS::Key",
            {
                "EnableKeyRotation": False,
                "Enabled": True,
                "KeyPolicy": {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Action": "kms:*",
                            "Resource": "*",
                            "Principal": {"AWS": cf_sub("arn:aws:iam::${AWS::AccountId}:root")},
                        }
                    ],
                },
                "KeySpec": "SYMMETRIC_DEFAULT",
                "KeyUsage": "ENCRYPT_DECRYPT",
                "PendingWindowInDays": 7,
            },
        )
        template.add_resource(
            _REF_KEY_ALIAS,
            "AWS::KMS::Alias",
            {"AliasName": f"alias/{self.key_alias}", "TargetKeyId": cf_ref(_REF_KEY)},
        )
        return template

    async def ensure_key(self):
        """Create or update the stack holding the encryption key."""
        if self._key_ready:
            return
        await self.ops.stacks.upsert_stack(self.stack_name, self.key_template().to_json())
        self._key_ready = True

    async def load(self) -> dict:
        """Decrypt and return the secrets, initializing the file from defaults if missing.

        In dry-run mode nothing is decrypted and the defaults are returned.
        """
        await self.ensure_key()
        if self.ops.dry_run:
            logger.info(f"[dry-run] read {self.file_path} (using defaults)")
            return dict(self.defaults)
        if not os.path.exists(self.file_path):
            logger.info(f"Secrets file not found, initializing: {self.file_path}")
            await self.save(self.defaults)

        with open(self.file_path) as f:
            encoded = f.read().strip()
        plaintext = await self.ops.decrypt(self.key_alias, base64.b64decode(encoded))
        try:
            values = json.loads(plaintext)
        except json.JSONDecodeError as e:
            raise ValidationError(f"secrets '{self.context_name}': invalid content in {self.file_path}: {e}") from e
        if not isinstance(values, dict):
            raise ValidationError(f"secrets '{self.context_name}': expected a mapping in {self.file_path}")
        for value in values.values():
            if isinstance(value, str):
                register_secret(value)
        return values

    async def save(self, values: dict):
        """Encrypt *values* and write them to the secrets file."""
        await self.ensure_key()
        plaintext = json.dumps(values, indent=2, sort_keys=True).encode()
        ciphertext = await self.ops.encrypt(self.key_alias, plaintext)
        if self.ops.dry_run:
            logger.info(f"[dry-run] write {self.file_path}")
            return
        parent = os.path.dirname(os.path.abspath(self.file_path))
        os.makedirs(parent, exist_ok=True)
        with open(self.file_path, "w") as f:
            f.write(base64.b64encode(ciphertext).decode())
        logger.info(f"Secrets saved: {self.file_path}")
