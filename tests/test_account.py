import gc
import threading

import pytest
from eth_abi import decode as abi_decode
from hypothesis import HealthCheck, given, settings, strategies as st

from shardkit.address import DEFAULT_SALT, derive_address, shard_of
from shardkit.config import ShardkitConfig
from shardkit.errors import (
    ConfigurationError,
    ConfirmationTimeout,
    ExecutionFailure,
    InvalidShardId,
    RpcError,
)
from shardkit.tx.build import DeployPayload
from shardkit.tx.send import WaitMode
from shardkit.types.abi import WALLET_ABI, EthAbiCodec
from shardkit.wallet import account as account_module
from shardkit.wallet.account import AccountClient, AccountState
from shardkit.wallet.signer import LocalKeySigner

from conftest import FakeNode

WALLET_CODE = bytes.fromhex("608060405234801561001057600080fd5b50")


def make_wallet(node, signer, cfg, **kw):
    kw.setdefault("shard_id", 2)
    kw.setdefault("salt", 100)
    return AccountClient(signer.public_key(), node, signer, code=WALLET_CODE, config=cfg, **kw)


# ---- Construction ----


def test_empty_construction_is_rejected(node, signer, cfg):
    with pytest.raises(ConfigurationError):
        AccountClient(None, node, signer, config=cfg)


def test_public_key_without_shard_is_rejected(node, signer, cfg):
    with pytest.raises(ConfigurationError):
        AccountClient(signer.public_key(), node, signer, config=cfg)


def test_address_with_salt_is_rejected_even_when_consistent(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    with pytest.raises(ConfigurationError):
        AccountClient(signer.public_key(), node, signer, address=w.address, salt=100, config=cfg)
    with pytest.raises(ConfigurationError):
        AccountClient(
            signer.public_key(), node, signer, address=w.address, salt=100, shard_id=2, config=cfg
        )


def test_address_with_mismatched_shard_is_rejected(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    with pytest.raises(ConfigurationError):
        AccountClient(None, node, signer, address=w.address, shard_id=1, config=cfg)


def test_malformed_address_is_a_configuration_error(node, signer, cfg):
    with pytest.raises(ConfigurationError):
        AccountClient(None, node, signer, address="0x1234", config=cfg)


def test_invalid_shard_rejected(node, signer, cfg):
    with pytest.raises(InvalidShardId):
        make_wallet(node, signer, cfg, shard_id=4)


def test_derived_identity(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    assert w.address == derive_address(signer.public_key(), 2, 100, WALLET_CODE)
    assert w.address == AccountClient.calculate_address(signer.public_key(), 2, 100, WALLET_CODE)
    assert shard_of(w.address) == w.shard_id == 2
    assert w.state is AccountState.UNINITIALIZED
    assert node.calls == []


def test_salt_defaults_to_default_salt(node, signer, cfg):
    w = make_wallet(node, signer, cfg, salt=None)
    assert w.salt == DEFAULT_SALT
    assert w.address == derive_address(signer.public_key(), 2, DEFAULT_SALT, WALLET_CODE)


def test_attached_account_reads_shard_from_address(node, signer, cfg):
    derived = make_wallet(node, signer, cfg)
    attached = AccountClient(None, node, signer, address=derived.address_hex, config=cfg)
    assert attached.address == derived.address
    assert attached.shard_id == 2
    with pytest.raises(ConfigurationError):
        attached.self_deploy()


# ---- Deploys ----


def test_self_deploy_builds_signed_deploy_envelope(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    h = w.self_deploy()
    assert w.state is AccountState.DEPLOYED
    [env] = node.submitted
    assert env.is_deploy and env.to == w.address
    assert env.hash_hex() == h
    assert (env.seqno, env.chain_id) == (0, node.chain_id)
    assert signer.verify(env.hash(), env.auth_data)
    payload = DeployPayload.decode(env.data)
    assert payload.public_key == signer.public_key()
    assert payload.code == WALLET_CODE
    assert payload.address(2) == w.address


def test_self_deploy_without_wait_does_not_poll(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    w.self_deploy(wait=False)
    assert w.state is AccountState.DEPLOYED
    assert "get_receipt" not in node.methods()


def test_failed_self_deploy_raises_and_stays_uninitialized(node, signer, cfg):
    node.outcomes.append("fail")
    w = make_wallet(node, signer, cfg)
    with pytest.raises(ExecutionFailure) as ei:
        w.self_deploy()
    assert ei.value.message_hash == node.submitted[0].hash_hex()
    assert w.state is AccountState.UNINITIALIZED


def test_duplicate_deploy_with_same_seqno_surfaces_node_rejection(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    w.self_deploy(seqno=0)
    with pytest.raises(RpcError):
        w.self_deploy(seqno=0)
    assert len(node.submitted) == 1


def test_deploy_contract_single_submission_with_exact_payload(node, signer, cfg):
    abi = [
        {
            "type": "constructor",
            "inputs": [{"name": "owner", "type": "address"}, {"name": "cap", "type": "uint256"}],
        }
    ]
    owner = bytes.fromhex("0001" + "44" * 18)
    bytecode = bytes.fromhex("6080604052600a600c")
    w = make_wallet(node, signer, cfg)

    result = w.deploy_contract(
        bytecode=bytecode, abi=abi, args=[owner, 500], salt=100, shard_id=1, value=100, seqno=0, chain_id=1
    )

    assert node.methods() == ["submit_raw_message"]
    [env] = node.submitted
    assert env.is_deploy and env.value == 100 and env.chain_id == 1
    assert env.to == result.address and shard_of(result.address) == 1
    payload = DeployPayload.decode(env.data)
    assert payload.public_key == b""
    assert payload.code[: len(bytecode)] == bytecode
    got_owner, got_cap = abi_decode(["address", "uint256"], payload.code[len(bytecode):])
    assert bytes.fromhex(got_owner[2:]) == owner and got_cap == 500
    assert result.address == derive_address(b"", 1, 100, payload.code)
    assert result.message_hash == env.hash_hex()


def test_deploy_contract_fetches_seqno_of_new_address(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    result = w.deploy_contract(bytecode=b"\x60\x00", salt=1, shard_id=3)
    assert ("get_seqno", (result.address, "latest")) in node.calls
    assert w.state is AccountState.UNINITIALIZED


# ---- Messages ----


def test_send_message_is_async(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    other = bytes.fromhex("0003" + "55" * 18)
    h = w.send_message(other, value=7, gas=50_000, data=b"\x01")
    assert h == node.submitted[0].hash_hex()
    assert "get_receipt" not in node.methods()

    env = node.submitted[0]
    assert not env.is_deploy and env.to == w.address
    name, args = EthAbiCodec().decode_call(WALLET_ABI, env.data)
    assert name == "asyncCall"
    dst, refund, bounce, gas, deploy, value, data = args
    assert bytes.fromhex(dst[2:]) == other
    assert bytes.fromhex(refund[2:]) == w.address == bytes.fromhex(bounce[2:])
    assert (gas, deploy, value, data) == (50_000, False, 7, b"\x01")


def test_sync_send_transfers_value_same_shard(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    w.self_deploy()
    peer = make_wallet(node, signer, cfg, salt=101)
    h = w.sync_send_message(peer.address, value=10, gas=100_000)
    assert h == node.submitted[-1].hash_hex()
    assert node.balances[peer.address] == 10
    assert node.methods()[-1] == "get_receipt"


def test_sync_send_execution_failure(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    node.outcomes.append("fail")
    with pytest.raises(ExecutionFailure):
        w.sync_send_message(w.address, value=1, gas=1)
    assert len(node.submitted) == 1


def test_sync_send_confirmation_timeout(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    node.outcomes.append("missing")
    with pytest.raises(ConfirmationTimeout) as ei:
        w.sync_send_message(w.address, value=1, gas=1, timeout_s=0.02)
    assert isinstance(ei.value, TimeoutError)
    assert ei.value.message_hash == node.submitted[0].hash_hex()
    assert len(node.submitted) == 1


def test_explicit_seqno_and_chain_id_skip_lookups(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    w.send_message(w.address, value=0, gas=1, seqno=0, chain_id=1)
    assert node.methods() == ["submit_raw_message"]


def test_send_with_full_chain_wait(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    h = w.send_message(w.address, value=0, gas=1, wait=WaitMode.FULL_CHAIN)
    assert h == node.submitted[0].hash_hex()
    assert "get_receipt" in node.methods()


@settings(max_examples=10, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(n=st.integers(min_value=1, max_value=8))
def test_sequential_sends_use_strictly_increasing_seqnos(n):
    fake = FakeNode()
    s = LocalKeySigner.generate()
    w = AccountClient(s.public_key(), fake, s, shard_id=1, config=ShardkitConfig(receipt_poll_interval=0.001))
    for i in range(n):
        w.send_message(w.address, value=i, gas=1)
    seqnos = [e.seqno for e in fake.submitted]
    assert seqnos == list(range(n))


def test_concurrent_sends_on_one_address_do_not_reuse_seqnos(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    errors = []

    def worker():
        try:
            for _ in range(5):
                w.send_message(w.address, value=1, gas=1)
        except Exception as e:  # collected and asserted below
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert sorted(e.seqno for e in node.submitted) == list(range(20))


def test_send_locks_are_dropped_after_use(node, signer, cfg):
    w = make_wallet(node, signer, cfg)
    targets = [w.deploy_contract(bytecode=b"\x60\x00", salt=s, shard_id=3).address for s in range(5)]
    w.send_message(w.address, value=0, gas=1)
    gc.collect()
    assert not set(targets) & set(account_module._LOCKS.keys())
    assert w.address not in account_module._LOCKS
