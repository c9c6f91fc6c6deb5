"""RFC 5988 ``Link`` header helpers for cursor-by-URL pagination."""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple, Union


def parse_link_header(link: str) -> List[Tuple[str, Dict[str, str]]]:
    """
    Parse a Link header into ``(reference, parameters)`` pairs.

    Raises:
        ValueError: If the header is malformed
    """
    parsed = []
    for item in link.split(","):
        raw_reference, *raw_parameters = item.split(";")
        reference = raw_reference.strip()
        if not (reference.startswith("<") and reference.endswith(">")):
            raise ValueError(f"Invalid format of the Link header reference: {reference}")
        if not raw_parameters:
            raise ValueError(f"Unexpected end of Link header parameters: {item}")

        parameters = {}
        for raw_parameter in raw_parameters:
            name, sep, value = raw_parameter.strip().partition("=")
            if not sep:
                raise ValueError(f"Failed to parse Link header: {link}")
            parameters[name.strip()] = value.strip().strip('"')

        parsed.append((reference[1:-1], parameters))
    return parsed


def next_link(header: Optional[Union[str, List[str]]]) -> Optional[str]:
    """
    URL of the ``rel="next"`` entry, or None.

    Accepts a single header or several; more than one ``next`` across
    several headers is ambiguous and raises ValueError.
    """
    if not header:
        return None

    if isinstance(header, list):
        candidates = [url for url in (next_link(h) for h in header) if url]
        if len(candidates) > 1:
            raise ValueError("Received multiple `Link` headers with `rel=next`")
        return candidates[0] if candidates else None

    for reference, parameters in parse_link_header(header):
        if parameters.get("rel") == "next":
            return reference
    return None
