"""Whitelist filter for inbound chat addresses."""

from collections.abc import Iterable


class WhitelistFilter:
    """Decides which chat addresses may have replies relayed.

    An empty whitelist allows every address. A non-empty one allows exact
    matches only.

    Example:
        >>> WhitelistFilter([]).is_allowed("anything@g.us")
        True
        >>> WhitelistFilter(["a@g.us"]).is_allowed("b@g.us")
        False
    """

    def __init__(self, addresses: Iterable[str] = ()) -> None:
        self._addresses = frozenset(addresses)

    @property
    def addresses(self) -> frozenset[str]:
        return self._addresses

    def is_allowed(self, address: str) -> bool:
        if not self._addresses:
            return True
        return address in self._addresses
