# poe - Proof-of-existence claim registry
#
# Core concepts:
# - Claim: a byte sequence; registering it proves you had it first
# - ClaimRegistry: create / revoke / transfer state machine
# - ProofStore: transactional claim -> owner mapping
# - Runtime: reference host supplying block numbers and journaling events

__version__ = "0.1.0"
