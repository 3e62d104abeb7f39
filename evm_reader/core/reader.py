"""
EVM Reader
Request-shaped read operations against one network: contract reads,
multicall batches, token balances and token metadata
"""
from typing import Any, Mapping, Optional

from evm_reader.config.networks import NetworkConfig, resolve_network
from evm_reader.config.secrets import RpcCredentials, load_credentials
from evm_reader.config.settings import DEFAULT_MULTICALL_ADDRESS
from evm_reader.core.abi import parse_args, read_only_functions, require_abi, to_checksum_address
from evm_reader.core.block import BlockSelector
from evm_reader.core.errors import EmptyBatchError, EvmReaderError, ValidationError
from evm_reader.core.network.multicall import CallSpec, MulticallEngine
from evm_reader.core.network.rpc_client import RpcClient
from evm_reader.core.network.transport import Endpoint
from evm_reader.tokens.erc20 import get_erc20_balance, get_native_balance, get_token_metadata
from evm_reader.utils.serialization import normalize_bigint
from evm_reader.utils.endpoint_registry import EndpointRegistry
from evm_reader.utils.logger import get_logger

logger = get_logger(__name__)


def _block_from(request: Mapping[str, Any]) -> BlockSelector:
    # Multicall requests nest the selector under "block"; single reads may inline it
    block = request.get("block")
    return BlockSelector.from_request(block if block is not None else request)


class EvmReader:
    """
    Read operations for one resolved network.
    The registry is shared by every reader in the process.
    """

    def __init__(self, network: NetworkConfig, registry: EndpointRegistry):
        self.network = network
        endpoint = Endpoint(network.rpc_url, dict(network.headers))
        self.client = RpcClient(registry.transport(endpoint, network.client_config))
        self.multicall_engine = MulticallEngine(self.client)

    @classmethod
    def from_settings(
        cls,
        registry: EndpointRegistry,
        credentials: Optional[RpcCredentials] = None,
        preset_name: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> "EvmReader":
        """Resolve the network from a preset and credentials (env when not given)"""
        credentials = credentials or load_credentials()
        if credentials is None:
            if not preset_name:
                raise ValidationError("No RPC credentials configured (set EVM_RPC_URL)")
            credentials = RpcCredentials(rpc_url="")
        return cls(resolve_network(preset_name, credentials, options), registry)

    async def contract_read(self, request: Mapping[str, Any]) -> dict[str, Any]:
        """Call one read-only function: {contractAddress, abiJson, functionName, argsJson?, block?}"""
        address = to_checksum_address(request.get("contractAddress"), "contract address")
        abi = require_abi(request.get("abiJson", request.get("abi")))
        read_only_abi = read_only_functions(abi)
        if not read_only_abi:
            raise ValidationError("ABI contains no read-only (view/pure) functions")

        function_name = request.get("functionName") or ""
        if not any(entry["name"] == function_name for entry in read_only_abi):
            raise ValidationError(
                f'Function "{function_name}" is not read-only or not present in the provided ABI'
            )

        args = parse_args(request.get("argsJson", request.get("args")))
        block = _block_from(request)
        result = await self.client.read_contract(
            address, read_only_abi, function_name, args, block, json_safe=True
        )
        return {
            "address": address,
            "functionName": function_name,
            "args": normalize_bigint(args),
            "result": result,
        }

    async def multicall(self, request: Mapping[str, Any]) -> dict[str, Any]:
        """Batch reads: {calls, allowFailures?, multicallAddress?, block?}"""
        raw_calls = request.get("calls") or []
        # Host fixed collections wrap the list as {"call": [...]}
        if isinstance(raw_calls, Mapping):
            raw_calls = raw_calls.get("call") or []
        if not raw_calls:
            raise EmptyBatchError()

        specs = []
        for index, call in enumerate(raw_calls):
            if not isinstance(call, Mapping):
                raise ValidationError(f"Call {index} must be an object").with_context(call_index=index)
            try:
                specs.append(CallSpec.from_request(call))
            except EvmReaderError as e:
                e.with_context(call_index=index, call_id=call.get("callId") or None)
                raise

        allow_failures = request.get("allowFailures")
        result = await self.multicall_engine.batch(
            specs,
            allow_failures=True if allow_failures is None else bool(allow_failures),
            block=_block_from(request),
            aggregator_address=request.get("multicallAddress") or DEFAULT_MULTICALL_ADDRESS,
        )
        logger.info(
            f"Multicall finished: {result.successful_calls} succeeded, {result.failed_calls} failed"
        )
        return result.to_dict()

    async def token_balance(self, request: Mapping[str, Any]) -> dict[str, Any]:
        """Native or ERC-20 balance: {assetType, account, token?, formatOutput?, block?}"""
        asset_type = request.get("assetType") or "erc20"
        block = _block_from(request)

        if asset_type == "native":
            return await get_native_balance(self.client, request.get("account"), block)
        if asset_type != "erc20":
            raise ValidationError(f"Unsupported asset type '{asset_type}'")

        format_output = request.get("formatOutput")
        return await get_erc20_balance(
            self.client,
            request.get("token"),
            request.get("account"),
            block,
            format_output=True if format_output is None else bool(format_output),
        )

    async def token_metadata(self, request: Mapping[str, Any]) -> dict[str, Any]:
        """Token metadata and capability flags: {token, block?}"""
        return await get_token_metadata(self.client, request.get("token"), _block_from(request))

    async def verify_credentials(self) -> dict[str, Any]:
        """Check the endpoint answers eth_chainId"""
        chain_id = await self.client.get_chain_id()
        if self.network.chain_id and chain_id != self.network.chain_id:
            logger.warning(
                f"Endpoint reports chain {chain_id}, preset expects {self.network.chain_id}"
            )
        return {"chainId": chain_id}
