import pytest

from shardkit.contracts.faucet import FAUCET_ADDRESS, Faucet, RetryPolicy
from shardkit.errors import ConfirmationTimeout, ExecutionFailure, RetryExhausted, RpcError
from shardkit.types.abi import FAUCET_ABI, EthAbiCodec

TARGET = bytes.fromhex("0002" + "77" * 18)


def transport_error():
    return RpcError(code=-32098, message="RPC transport failed", method="eth_sendRawTransaction")


@pytest.fixture
def faucet(node, cfg):
    return Faucet(node, config=cfg)


def test_faucet_address_is_on_shard_one():
    assert FAUCET_ADDRESS[:2] == b"\x00\x01"
    assert len(FAUCET_ADDRESS) == 20


def test_policy_defaults_and_from_config(cfg):
    p = RetryPolicy()
    assert (p.max_attempts, p.attempt_timeout_s, p.backoff_s, p.retry_on_execution_failure) == (5, 10.0, 1.0, True)
    p = RetryPolicy.from_config(cfg)
    assert (p.max_attempts, p.attempt_timeout_s, p.backoff_s) == (5, 0.02, 0.0)
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_first_attempt_success(node, faucet):
    h = faucet.withdraw_with_retry(TARGET, 1000)
    [env] = node.submitted
    assert h == env.hash_hex()
    assert env.to == FAUCET_ADDRESS and not env.is_deploy
    assert node.balances[TARGET] == 1000

    name, (dst, value) = EthAbiCodec().decode_call(FAUCET_ABI, env.data)
    assert name == "withdrawTo"
    assert bytes.fromhex(dst[2:]) == TARGET and value == 1000


@pytest.mark.parametrize("k", [1, 2, 4])
def test_execution_failures_then_success(node, faucet, k):
    node.outcomes.extend(["fail"] * k)
    h = faucet.withdraw_with_retry(TARGET, 5)
    assert len(node.submitted) == k + 1
    assert h == node.submitted[-1].hash_hex()
    assert node.balances[TARGET] == 5


def test_each_attempt_uses_fresh_seqno(node, faucet):
    node.outcomes.extend(["fail", "missing"])
    faucet.withdraw_with_retry(TARGET, 5)
    assert [e.seqno for e in node.submitted] == [0, 1, 2]
    assert node.methods().count("get_seqno") == 3
    assert node.methods().count("get_chain_id") == 3


def test_always_failing_exhausts_attempts(node, faucet):
    node.outcomes.extend(["fail"] * 10)
    with pytest.raises(RetryExhausted) as ei:
        faucet.withdraw_with_retry(TARGET, 5)
    assert len(node.submitted) == 5
    assert ei.value.attempts == 5
    assert isinstance(ei.value.last_cause, ExecutionFailure)
    assert ei.value.__cause__ is ei.value.last_cause


def test_unconfirmed_attempts_are_retried(node, faucet):
    node.outcomes.extend(["missing"] * 3)
    h = faucet.withdraw_with_retry(TARGET, 5, max_attempts=4)
    assert len(node.submitted) == 4
    assert h == node.submitted[-1].hash_hex()


def test_last_cause_is_timeout_when_nothing_confirms(node, faucet):
    node.outcomes.extend(["missing"] * 2)
    with pytest.raises(RetryExhausted) as ei:
        faucet.withdraw_with_retry(TARGET, 5, max_attempts=2)
    assert isinstance(ei.value.last_cause, ConfirmationTimeout)
    assert len(node.submitted) == 2


def test_transport_errors_are_retried(node, faucet):
    node.outcomes.extend([transport_error(), transport_error()])
    h = faucet.withdraw_with_retry(TARGET, 5)
    assert len(node.submitted) == 1
    assert node.methods().count("submit_raw_message") == 3
    assert h == node.submitted[0].hash_hex()


def test_transport_error_on_last_attempt_propagates(node, faucet):
    node.outcomes.extend(["fail", transport_error()])
    with pytest.raises(RpcError) as ei:
        faucet.withdraw_with_retry(TARGET, 5, max_attempts=2)
    assert ei.value.code == -32098


def test_execution_failure_not_retried_when_disabled(node, cfg):
    policy = RetryPolicy(attempt_timeout_s=0.02, backoff_s=0, retry_on_execution_failure=False)
    faucet = Faucet(node, config=cfg, policy=policy)
    node.outcomes.append("fail")
    with pytest.raises(ExecutionFailure) as ei:
        faucet.withdraw_with_retry(TARGET, 5)
    assert len(node.submitted) == 1
    assert ei.value.message_hash == node.submitted[0].hash_hex()


def test_invalid_max_attempts(faucet):
    with pytest.raises(ValueError):
        faucet.withdraw_with_retry(TARGET, 5, max_attempts=0)


def test_withdraw_to_submits_once_without_waiting(node, faucet):
    h = faucet.withdraw_to("0x" + TARGET.hex(), 3)
    assert h == node.submitted[0].hash_hex()
    assert "get_receipt" not in node.methods()
    assert node.methods().count("submit_raw_message") == 1


def test_explicit_signer_is_used(node, cfg, signer):
    Faucet(node, signer=signer, config=cfg).withdraw_to(TARGET, 1, seqno=0, chain_id=1)
    env = node.submitted[0]
    assert signer.verify(env.hash(), env.auth_data)
    assert node.methods() == ["submit_raw_message"]
