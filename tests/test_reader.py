import json

import pytest

from evm_reader.config.client_config import ClientConfig
from evm_reader.config.networks import NetworkConfig
from evm_reader.config.secrets import RpcCredentials
from evm_reader.core.errors import EmptyBatchError, ValidationError
from evm_reader.core.reader import EvmReader
from evm_reader.tokens.erc20 import ERC20_ABI

from conftest import EOA, HOLDER, MULTICALL, OTHER, RPC_URL, TOKEN

ERC20_JSON = json.dumps(ERC20_ABI)


@pytest.fixture
def reader(registry):
    network = NetworkConfig(
        rpc_url=RPC_URL,
        headers={"x-api-key": "top-secret-value"},
        chain_id=1,
        client_config=ClientConfig(retry_count=1, retry_delay_ms=100),
    )
    return EvmReader(network, registry)


@pytest.mark.asyncio
async def test_contract_read(reader, chain, erc20_token):
    response = await reader.contract_read({
        "contractAddress": TOKEN,
        "abiJson": ERC20_JSON,
        "functionName": "balanceOf",
        "argsJson": json.dumps([HOLDER]),
        "blockNumber": 17,
    })
    assert response == {
        "address": TOKEN,
        "functionName": "balanceOf",
        "args": [HOLDER],
        "result": "1500000000000000000",
    }
    assert chain.call_blocks == ["0x11"]


@pytest.mark.asyncio
async def test_contract_read_rejects_state_changing_function(reader, session):
    abi = json.dumps(ERC20_ABI + [{
        "type": "function", "name": "transfer", "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    }])
    with pytest.raises(ValidationError, match="not read-only"):
        await reader.contract_read({
            "contractAddress": TOKEN, "abiJson": abi, "functionName": "transfer",
            "argsJson": json.dumps([HOLDER, 1]),
        })
    assert session.requests == []


@pytest.mark.asyncio
async def test_contract_read_requires_read_only_functions(reader):
    with pytest.raises(ValidationError, match="no read-only"):
        await reader.contract_read({
            "contractAddress": TOKEN,
            "abiJson": "function approve(address spender, uint256 amount) returns (bool)",
            "functionName": "approve",
        })


@pytest.mark.asyncio
async def test_contract_read_invalid_abi(reader):
    with pytest.raises(ValidationError, match="Invalid ABI"):
        await reader.contract_read({"contractAddress": TOKEN, "abiJson": "{oops", "functionName": "x"})


@pytest.mark.asyncio
async def test_multicall_request(reader, chain, session, erc20_token):
    chain.reverts(OTHER, "decimals()")
    response = await reader.multicall({
        "calls": {"call": [
            {"callId": "sym", "contractAddress": TOKEN, "abiJson": ERC20_JSON, "functionName": "symbol"},
            {"contractAddress": OTHER, "abiJson": ERC20_JSON, "functionName": "decimals"},
        ]},
        "block": {"blockTag": "safe"},
    })

    assert response["multicallAddress"] == MULTICALL
    assert (response["totalCalls"], response["successfulCalls"], response["failedCalls"]) == (2, 1, 1)
    assert response["results"][0]["result"] == "WETH"
    assert response["results"][1] == {
        "callId": "call_1",
        "success": False,
        "contractAddress": OTHER,
        "functionName": "decimals",
        "args": [],
        "error": "Call reverted",
    }
    assert "blockNumber" not in response
    assert chain.call_blocks == ["safe"]
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_multicall_empty(reader, session):
    with pytest.raises(EmptyBatchError):
        await reader.multicall({"calls": []})
    with pytest.raises(EmptyBatchError):
        await reader.multicall({"calls": {"call": []}})
    assert session.requests == []


@pytest.mark.asyncio
async def test_multicall_invalid_call_names_its_position(reader, session):
    with pytest.raises(ValidationError) as exc_info:
        await reader.multicall({"calls": [
            {"contractAddress": TOKEN, "abiJson": ERC20_JSON, "functionName": "symbol"},
            {"callId": "broken", "contractAddress": "0x12", "abiJson": ERC20_JSON, "functionName": "symbol"},
        ]})
    assert exc_info.value.details == {"call_index": 1, "call_id": "broken"}
    assert session.requests == []


@pytest.mark.asyncio
async def test_multicall_non_object_call_names_its_position(reader, session):
    with pytest.raises(ValidationError) as exc_info:
        await reader.multicall({"calls": [
            {"contractAddress": TOKEN, "abiJson": ERC20_JSON, "functionName": "symbol"},
            "not-a-call",
        ]})
    assert exc_info.value.details == {"call_index": 1}
    assert session.requests == []


@pytest.mark.asyncio
async def test_multicall_strict_mode(reader, chain, erc20_token):
    response = await reader.multicall({
        "calls": [{"contractAddress": TOKEN, "abiJson": ERC20_JSON, "functionName": "decimals"}],
        "allowFailures": False,
    })
    assert response["blockNumber"] == str(chain.block_number)
    assert response["results"][0]["result"] == 18


@pytest.mark.asyncio
async def test_token_balance(reader, chain, erc20_token):
    chain.balances[EOA.lower()] = 5 * 10**17

    erc20 = await reader.token_balance({"token": TOKEN, "account": HOLDER})
    native = await reader.token_balance({"assetType": "native", "account": EOA})

    assert erc20["balance"] == "1.5"
    assert native["balance"] == "0.5"
    with pytest.raises(ValidationError):
        await reader.token_balance({"assetType": "erc721", "account": EOA})


@pytest.mark.asyncio
async def test_token_metadata(reader, erc20_token):
    metadata = await reader.token_metadata({"token": TOKEN, "blockTag": "finalized"})
    assert metadata["symbol"] == "WETH"
    assert metadata["capabilities"]["pausable"] is False


@pytest.mark.asyncio
async def test_verify_credentials(reader, chain):
    chain.chain_id = 1
    assert await reader.verify_credentials() == {"chainId": 1}


def test_from_settings_uses_preset(registry):
    reader = EvmReader.from_settings(
        registry,
        RpcCredentials("https://ignored.example", {"x-key": "k"}),
        preset_name="Base",
        options={"retryCount": 0},
    )
    assert reader.network.rpc_url == "https://mainnet.base.org"
    assert reader.network.chain_id == 8453
    assert reader.network.headers == {"x-key": "k"}
    assert reader.network.client_config.retry_count == 0


def test_from_settings_without_credentials(registry, monkeypatch):
    monkeypatch.delenv("EVM_RPC_URL", raising=False)
    with pytest.raises(ValidationError):
        EvmReader.from_settings(registry)
    reader = EvmReader.from_settings(registry, preset_name="Polygon")
    assert reader.network.chain_id == 137
