"""
Finds the local IPv4 network so it can be scanned as a range target.

The default gateway comes from netifaces, falling back to the system routing
table. The interface whose network contains the gateway is taken from psutil;
without a gateway match the most physical-looking interface that is up wins.
"""
import ipaddress
import logging
import platform
import socket
import subprocess
from typing import List, Optional, Tuple

import netifaces
import psutil

VIRTUAL_KEYWORDS = ['virtual', 'vmware', 'vbox', 'docker', 'veth', 'tailscale', 'vpn', 'loopback', 'teredo']
PHYSICAL_KEYWORDS = ['ethernet', 'wi-fi', 'wlan', 'eth0', 'en0']


def _score_interface(iface_name: str) -> int:
    """Scores an interface based on its likelihood of being the 'real' physical one."""
    name = iface_name.lower()
    score = 100
    for keyword in VIRTUAL_KEYWORDS:
        if keyword in name:
            score -= 50
    for keyword in PHYSICAL_KEYWORDS:
        if keyword in name:
            score += 20
    stats = psutil.net_if_stats().get(iface_name)
    if stats is None or not stats.isup:
        score -= 100  # An interface that is down is useless
    else:
        score += 10
    return score


def _interface_networks() -> List[Tuple[str, ipaddress.IPv4Network, str]]:
    """Returns (interface, network, address) for every IPv4 address on an up, non-loopback interface."""
    stats = psutil.net_if_stats()
    networks = []
    for iface, addrs in psutil.net_if_addrs().items():
        if iface not in stats or not stats[iface].isup or iface.startswith('lo'):
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.netmask:
                continue
            try:
                network = ipaddress.ip_network(f"{addr.address}/{addr.netmask}", strict=False)
            except ValueError:
                continue
            if network.prefixlen == 32 or ipaddress.ip_address(addr.address).is_loopback:
                continue
            networks.append((iface, network, addr.address))
    return networks


def _get_gateway_from_system_command() -> Optional[str]:
    """Parses the system routing table for a default IPv4 gateway."""
    system = platform.system()
    try:
        if system == "Windows":
            result = subprocess.run(["route", "print", "-4"], capture_output=True, text=True, check=True)
            for line in result.stdout.splitlines():
                parts = line.split()
                if len(parts) >= 3 and parts[0] == "0.0.0.0":
                    return parts[2]
        else:
            result = subprocess.run(["ip", "route"], capture_output=True, text=True, check=True)
            for line in result.stdout.splitlines():
                parts = line.split()
                if len(parts) >= 3 and parts[0] == "default":
                    return parts[2]
    except (FileNotFoundError, subprocess.CalledProcessError) as e:
        logging.error(f"Failed to get gateway from system command: {e}")
    return None


def get_default_gateway() -> Optional[str]:
    """
    Returns the default IPv4 gateway.
    netifaces is tried first; the system routing table is the fallback.
    """
    try:
        gateways = netifaces.gateways()
        logging.debug(f"Raw gateways from netifaces: {gateways}")
        default = gateways.get('default', {})
        if netifaces.AF_INET in default:
            return default[netifaces.AF_INET][0]
    except (OSError, KeyError, IndexError, TypeError) as e:
        logging.warning(f"Could not determine default gateway using netifaces: {e}. Trying fallback.")

    logging.debug("Falling back to system command to find default gateway.")
    return _get_gateway_from_system_command()


def get_local_network() -> Optional[str]:
    """Returns the CIDR of the primary IPv4 network, e.g. '192.168.1.0/24', or None."""
    candidates = _interface_networks()
    if not candidates:
        logging.error("No IPv4 interface is up; cannot determine the local network.")
        return None

    gateway = get_default_gateway()
    if gateway:
        try:
            gateway_ip = ipaddress.ip_address(gateway)
        except ValueError:
            gateway_ip = None
        for iface, network, address in candidates:
            if gateway_ip is not None and gateway_ip in network:
                logging.info(f"Local network {network} on '{iface}' (gateway {gateway}).")
                return str(network)
        logging.warning(f"Gateway {gateway} is not on any local interface network.")

    iface, network, address = max(candidates, key=lambda c: _score_interface(c[0]))
    logging.info(f"Using best-scored interface '{iface}' network {network}.")
    return str(network)
