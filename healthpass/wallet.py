# healthpass/wallet.py
"""
Optional wallet identity: a patient proves control of an Ethereum address by
signing a fixed message, and the address is attached to their profile. This is
not part of the sharing trust chain.
"""
import json
import logging

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from healthpass import models
from healthpass.errors import NotFound, SignatureMismatch
from healthpass.store import Store

logger = logging.getLogger(__name__)


def ownership_message(patient_id: str) -> str:
    return f"Verify wallet ownership for patient ID: {patient_id}"


def recover_address(message: str, signature: str) -> str:
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        # eth-account raises a mix of ValueError/TypeError/BadSignature for junk input
        raise SignatureMismatch("signature could not be recovered") from e


def verify_wallet(store: Store, patient_id: str, address: str, signature: str) -> models.Profile:
    if not Web3.is_address(address):
        raise SignatureMismatch("invalid wallet address")
    profile = store.get(models.Profile, patient_id)
    if profile is None:
        raise NotFound("profile not found")
    expected = Web3.to_checksum_address(address)
    recovered = recover_address(ownership_message(patient_id), signature)
    if Web3.to_checksum_address(recovered) != expected:
        logger.info("wallet signature mismatch for patient %s", patient_id)
        raise SignatureMismatch("signature does not match address")
    store.update(profile, wallet_address=expected, wallet_verified=True)
    logger.info("wallet %s verified for patient %s", expected, patient_id)
    return profile


def record_hash(diagnosis: str, record_type: str, patient_id: str, timestamp: str) -> str:
    """keccak256 of the record summary, as 0x-prefixed hex."""
    data = json.dumps({
        "diagnosis": diagnosis,
        "record_type": record_type,
        "patient_id": patient_id,
        "timestamp": timestamp,
    }, separators=(",", ":"))
    return Web3.to_hex(Web3.keccak(text=data))
