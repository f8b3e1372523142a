#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

import re
from ipaddress import IPv4Address

import netifaces
from requests.structures import CaseInsensitiveDict

from .internal_types import *

_tag_re = re.compile(r'<-(?P<name>[^=<>]+)=(?P<value>[^>]*)>')

def parse_tags(text: str) -> CaseInsensitiveDict[str]:
    """Parse the bracketed <-Name=Value> tags out of free text.

    Tags may appear in any order and may be separated by arbitrary text. Tag names are
    case-insensitive. If a tag appears more than once, the first occurrence wins.
    Values are stripped of surrounding whitespace.

    Returns a CaseInsensitiveDict[str] mapping tag name to value.
    """
    tags: CaseInsensitiveDict[str] = CaseInsensitiveDict()
    for m in _tag_re.finditer(text):
        name = m.group('name').strip()
        if name != '' and not name in tags:
            tags[name] = m.group('value').strip()
    return tags

def encode_tags(tags: Mapping[str, str], prefix: str='') -> str:
    """Encodes a mapping as a sequence of <-Name=Value> tags, optionally preceded by a prefix."""
    return prefix + ''.join(f"<-{name}={value}>" for name, value in tags.items())

def trim_to_none(value: Optional[str]) -> Optional[str]:
    """Strips surrounding whitespace from a string. Returns None if value is None or the result is empty."""
    if value is None:
        return None
    value = value.strip()
    return value if value != '' else None

def get_default_route_interface() -> Optional[str]:
    """Returns the name of the interface that carries the default IPv4 route, or None if there is none."""
    default_routes = netifaces.gateways().get('default', {})
    route = default_routes.get(netifaces.AF_INET)
    return None if route is None else route[1]

def get_multicast_bind_addresses(include_loopback: bool=False) -> List[str]:
    """Returns the local IPv4 addresses on which a discovery socket should join the ZMote
       multicast group.

       Addresses on the default-route interface come first, since that is where a ZMote on
       the home network is most likely to be found. Docker bridge addresses (172.*) go last.
       Loopback addresses are omitted unless include_loopback is True.
    """
    default_ifname = get_default_route_interface()
    ranked: List[Tuple[int, str]] = []
    for ifname in netifaces.interfaces():
        for addrinfo in netifaces.ifaddresses(ifname).get(netifaces.AF_INET, []):
            ip_str = addrinfo.get('addr')
            if not isinstance(ip_str, str):
                continue
            if IPv4Address(ip_str).is_loopback:
                if not include_loopback:
                    continue
                rank = 3
            elif ifname == default_ifname:
                rank = 0
            elif ip_str.startswith('172.'):
                rank = 2
            else:
                rank = 1
            ranked.append((rank, ip_str))
    return [ ip for _, ip in sorted(ranked) ]

if __name__ == "__main__":
    import sys
    import argparse

    parser = argparse.ArgumentParser(description="Parse <-Name=Value> tags out of a ZMote announcement.")
    parser.add_argument("input", type=str, help="Input file to read from. If '-', read from stdin.")
    args = parser.parse_args()

    if args.input == '-':
        data = sys.stdin.buffer.read()
    else:
        with open(args.input, 'rb') as f:
            data = f.read()

    for name, value in parse_tags(data.decode('utf-8', errors='replace')).items():
        print(f"{name}: {value}")
