"""
Typed chain reads on top of a Transport
"""
from typing import Any, Optional, Sequence

from web3 import Web3

from evm_reader.core.abi import Abi, CallEncoder, ResultDecoder, to_checksum_address
from evm_reader.core.block import BlockSelector, LATEST
from evm_reader.core.errors import EvmReaderError, TransportError
from evm_reader.core.network.transport import Transport
from evm_reader.utils.logger import get_logger

logger = get_logger(__name__)


def _quantity(result: Any, method: str) -> int:
    if not isinstance(result, str) or not result.startswith("0x"):
        raise TransportError(f"{method} returned unexpected result {result!r}")
    return int(result, 16)


class RpcClient:
    """
    Read-only JSON-RPC calls. Integers are Python ints end to end;
    callers decide how to serialize them.
    """

    def __init__(self, transport: Transport):
        self.transport = transport

    async def call(self, to: str, data: bytes, block: Optional[BlockSelector] = None) -> bytes:
        """eth_call and return the raw bytes"""
        block = block or LATEST
        tx = {"to": to, "data": Web3.to_hex(data)}
        result = await self.transport.send("eth_call", [tx, block.to_rpc_param()])
        if not isinstance(result, str) or not result.startswith("0x"):
            raise TransportError(f"eth_call returned unexpected result {result!r}")
        return bytes(Web3.to_bytes(hexstr=result))

    async def read_contract(
        self,
        target: str,
        abi: Abi,
        function_name: str,
        args: Sequence[Any] = (),
        block: Optional[BlockSelector] = None,
        json_safe: bool = False,
    ) -> Any:
        """Encode, call and decode a view function"""
        address = to_checksum_address(target, "contract address")
        try:
            call = CallEncoder.encode(abi, function_name, args)
            raw = await self.call(address, call.data, block)
            return ResultDecoder.decode(call.fn_abi, raw, json_safe=json_safe)
        except EvmReaderError as e:
            e.with_context(contract=address, function=function_name)
            raise

    async def get_balance(self, address: str, block: Optional[BlockSelector] = None) -> int:
        """Native balance in wei"""
        block = block or LATEST
        account = to_checksum_address(address, "account address")
        result = await self.transport.send("eth_getBalance", [account, block.to_rpc_param()])
        return _quantity(result, "eth_getBalance")

    async def get_chain_id(self) -> int:
        return _quantity(await self.transport.send("eth_chainId", []), "eth_chainId")

    async def get_block_number(self) -> int:
        return _quantity(await self.transport.send("eth_blockNumber", []), "eth_blockNumber")
