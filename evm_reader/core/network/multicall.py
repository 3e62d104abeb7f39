"""
Multicall3 batching
Executes many contract reads as one eth_call against the aggregator and
maps each result back to the caller's call id.
Contract Address (most chains): 0xcA11bde05977b3631167028862bE2a173976CA11
"""
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, NamedTuple, Optional, Sequence

from evm_reader.config.settings import DEFAULT_MULTICALL_ADDRESS
from evm_reader.core.abi import (
    Abi, CallEncoder, ResultDecoder, parse_args, require_abi, to_checksum_address,
)
from evm_reader.core.block import BlockSelector
from evm_reader.core.errors import DecodeError, EmptyBatchError, EncodeError, ValidationError
from evm_reader.core.network.rpc_client import RpcClient
from evm_reader.utils.logger import get_logger
from evm_reader.utils.serialization import normalize_bigint

logger = get_logger(__name__)

MULTICALL3_ABI = [
    {
        "inputs": [
            {
                "components": [
                    {"internalType": "address", "name": "target", "type": "address"},
                    {"internalType": "bytes", "name": "callData", "type": "bytes"}
                ],
                "internalType": "struct Multicall3.Call[]",
                "name": "calls",
                "type": "tuple[]"
            }
        ],
        "name": "aggregate",
        "outputs": [
            {"internalType": "uint256", "name": "blockNumber", "type": "uint256"},
            {"internalType": "bytes[]", "name": "returnData", "type": "bytes[]"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {
                "components": [
                    {"internalType": "address", "name": "target", "type": "address"},
                    {"internalType": "bool", "name": "allowFailure", "type": "bool"},
                    {"internalType": "bytes", "name": "callData", "type": "bytes"}
                ],
                "internalType": "struct Multicall3.Call3[]",
                "name": "calls",
                "type": "tuple[]"
            }
        ],
        "name": "aggregate3",
        "outputs": [
            {
                "components": [
                    {"internalType": "bool", "name": "success", "type": "bool"},
                    {"internalType": "bytes", "name": "returnData", "type": "bytes"}
                ],
                "internalType": "struct Multicall3.Result[]",
                "name": "returnData",
                "type": "tuple[]"
            }
        ],
        "stateMutability": "view",
        "type": "function"
    }
]


@dataclass
class CallSpec:
    """One logical contract read in a batch"""
    target: str
    abi: Abi
    function_name: str
    args: list[Any] = field(default_factory=list)
    call_id: Optional[str] = None

    @classmethod
    def from_request(cls, call: Mapping[str, Any]) -> "CallSpec":
        """
        Build a spec from the host shape
        {callId?, contractAddress, abiJson|abi, functionName, argsJson|args?}
        """
        function_name = (call.get("functionName") or "").strip()
        if not function_name:
            raise ValidationError("Function name is required")
        return cls(
            target=to_checksum_address(call.get("contractAddress"), "contract address"),
            abi=require_abi(call.get("abiJson", call.get("abi"))),
            function_name=function_name,
            args=parse_args(call.get("argsJson", call.get("args"))),
            call_id=call.get("callId") or None,
        )


class EncodedCall(NamedTuple):
    target: str
    allow_failure: bool
    call_data: bytes
    # Entry the call data was encoded against; results decode with it
    fn_abi: dict[str, Any]


class RawCallResult(NamedTuple):
    success: bool
    return_data: bytes


@dataclass
class DecodedCallResult:
    call_id: str
    success: bool
    contract_address: str
    function_name: str
    args: list[Any]
    result: Any = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out = {
            "callId": self.call_id,
            "success": self.success,
            "contractAddress": self.contract_address,
            "functionName": self.function_name,
            "args": normalize_bigint(self.args),
        }
        if self.success:
            out["result"] = self.result
        else:
            out["error"] = self.error
        return out


@dataclass
class MulticallResult:
    """Per-call results of a batch; counts are always derived from `results`"""
    multicall_address: str
    results: list[DecodedCallResult]
    block_number: Optional[int] = None

    @property
    def total_calls(self) -> int:
        return len(self.results)

    @property
    def successful_calls(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_calls(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> dict[str, Any]:
        out = {
            "multicallAddress": self.multicall_address,
            "totalCalls": self.total_calls,
            "successfulCalls": self.successful_calls,
            "failedCalls": self.failed_calls,
            "results": [r.to_dict() for r in self.results],
        }
        if self.block_number is not None:
            out["blockNumber"] = str(self.block_number)
        return out


class MulticallEngine:
    """
    Batches N contract reads into one aggregator call.

    allow_failures=True uses aggregate3: every call succeeds or fails on its
    own. allow_failures=False uses aggregate: any revert fails the whole
    batch and surfaces as an RPC error.
    """

    def __init__(self, client: RpcClient):
        self.client = client

    async def batch(
        self,
        calls: Sequence[CallSpec],
        allow_failures: bool = True,
        block: Optional[BlockSelector] = None,
        aggregator_address: str = DEFAULT_MULTICALL_ADDRESS,
    ) -> MulticallResult:
        """
        Execute `calls` in one request.
        Returns one DecodedCallResult per input call, in input order.
        """
        if not calls:
            raise EmptyBatchError()
        aggregator = to_checksum_address(aggregator_address, "multicall address")
        calls = [replace(spec, target=to_checksum_address(spec.target, "contract address")) for spec in calls]

        call_ids = [spec.call_id or f"call_{i}" for i, spec in enumerate(calls)]
        results: list[Optional[DecodedCallResult]] = [None] * len(calls)
        encoded: list[EncodedCall] = []
        positions: list[int] = []

        for i, spec in enumerate(calls):
            try:
                call = CallEncoder.encode(spec.abi, spec.function_name, spec.args)
            except EncodeError as e:
                if not allow_failures:
                    e.with_context(call_id=call_ids[i], contract=spec.target, function=spec.function_name)
                    raise
                results[i] = self._failed(call_ids[i], spec, f"Failed to encode call: {e.message}")
                continue
            encoded.append(EncodedCall(spec.target, allow_failures, call.data, call.fn_abi))
            positions.append(i)

        block_number = None
        if encoded:
            if allow_failures:
                raw_results = await self._aggregate3(aggregator, encoded, block)
            else:
                block_number, raw_results = await self._aggregate(aggregator, encoded, block)

            if len(raw_results) != len(encoded):
                raise DecodeError(
                    f"Aggregator returned {len(raw_results)} results for {len(encoded)} calls"
                ).with_context(contract=aggregator)

            for position, call, raw in zip(positions, encoded, raw_results):
                results[position] = self._decode(call_ids[position], calls[position], call, raw)
        else:
            logger.warning("No call in the batch could be encoded, skipping aggregator request")

        result = MulticallResult(aggregator, results, block_number)
        logger.debug(
            f"Multicall via {aggregator}: {result.successful_calls}/{result.total_calls} succeeded"
        )
        return result

    async def _aggregate3(
        self,
        aggregator: str,
        encoded: list[EncodedCall],
        block: Optional[BlockSelector],
    ) -> list[RawCallResult]:
        call_structs = [(c.target, c.allow_failure, c.call_data) for c in encoded]
        response = await self.client.read_contract(
            aggregator, MULTICALL3_ABI, "aggregate3", [call_structs], block
        )
        return [RawCallResult(r["success"], r["returnData"]) for r in response]

    async def _aggregate(
        self,
        aggregator: str,
        encoded: list[EncodedCall],
        block: Optional[BlockSelector],
    ) -> tuple[int, list[RawCallResult]]:
        call_structs = [(c.target, c.call_data) for c in encoded]
        block_number, return_data = await self.client.read_contract(
            aggregator, MULTICALL3_ABI, "aggregate", [call_structs], block
        )
        # aggregate reverts as a whole, so every returned entry succeeded
        return block_number, [RawCallResult(True, data) for data in return_data]

    def _decode(
        self, call_id: str, spec: CallSpec, call: EncodedCall, raw: RawCallResult
    ) -> DecodedCallResult:
        if not raw.success:
            return self._failed(call_id, spec, "Call reverted")
        try:
            value = ResultDecoder.decode(call.fn_abi, raw.return_data, json_safe=True)
        except DecodeError as e:
            return self._failed(call_id, spec, f"Failed to decode result: {e.message}")
        return DecodedCallResult(
            call_id=call_id,
            success=True,
            contract_address=spec.target,
            function_name=spec.function_name,
            args=spec.args,
            result=value,
        )

    @staticmethod
    def _failed(call_id: str, spec: CallSpec, error: str) -> DecodedCallResult:
        return DecodedCallResult(
            call_id=call_id,
            success=False,
            contract_address=spec.target,
            function_name=spec.function_name,
            args=spec.args,
            error=error,
        )
