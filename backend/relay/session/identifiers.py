"""Session code and shared seed generation.

Session codes are four upper-case base-36 characters so players can read
them out to each other. Codes are not checked against the active set:
with 36**4 (about 1.7 million) codes and a handful of concurrent sessions
a collision is unlikely but possible, and a colliding create replaces the
older session in the store.
"""

import secrets
import string

SESSION_ID_LENGTH = 4
SESSION_ID_ALPHABET = string.digits + string.ascii_uppercase

# Fits a signed 32-bit integer so JavaScript clients can seed their PRNGs
# without precision loss.
SEED_UPPER_BOUND = 2**31


def generate_session_id() -> str:
    return "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(SESSION_ID_LENGTH))


def generate_seed() -> int:
    return secrets.randbelow(SEED_UPPER_BOUND)
