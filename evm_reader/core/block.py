"""
Block selection: explicit block number or block tag
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from evm_reader.config.settings import BLOCK_TAGS, DEFAULT_BLOCK_TAG
from evm_reader.core.errors import ValidationError


@dataclass(frozen=True)
class BlockSelector:
    """Which chain state a read applies to. A positive block number wins over the tag."""
    block_number: Optional[int] = None
    block_tag: Optional[str] = DEFAULT_BLOCK_TAG

    @classmethod
    def from_request(cls, block: Optional[Mapping[str, Any]]) -> "BlockSelector":
        """Build a selector from the host's block collection ({blockNumber?, blockTag?})"""
        block = block or {}
        tag = block.get("blockTag") or DEFAULT_BLOCK_TAG
        if tag not in BLOCK_TAGS:
            raise ValidationError(f"Unsupported block tag '{tag}', expected one of {', '.join(BLOCK_TAGS)}")

        raw_number = block.get("blockNumber")
        number: Optional[int] = None
        if isinstance(raw_number, bool):
            raise ValidationError(f"Invalid block number {raw_number!r}")
        if raw_number not in (None, ""):
            try:
                number = int(raw_number)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid block number {raw_number!r}") from e
        return cls(block_number=number, block_tag=tag)

    def to_rpc_param(self) -> str:
        """Block parameter for eth_call / eth_getBalance"""
        resolved = resolve(self)
        if "blockNumber" in resolved:
            return hex(resolved["blockNumber"])
        return resolved["blockTag"]


LATEST = BlockSelector()


def resolve(selector: Optional[Union[BlockSelector, Mapping[str, Any]]]) -> dict[str, Any]:
    """
    Resolve a selector to {"blockNumber": n} or {"blockTag": tag}.
    Zero, negative or missing block numbers count as unset.
    """
    if selector is None:
        number, tag = None, None
    elif isinstance(selector, BlockSelector):
        number, tag = selector.block_number, selector.block_tag
    else:
        number, tag = selector.get("blockNumber"), selector.get("blockTag")

    if isinstance(number, int) and not isinstance(number, bool) and number > 0:
        return {"blockNumber": number}
    return {"blockTag": tag or DEFAULT_BLOCK_TAG}
