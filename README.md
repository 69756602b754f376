# vmwnet

Readers for the network configuration files that a desktop hypervisor keeps
on the host. The package parses these file types:

- `dhcpd.conf`: subnets, hosts and the options each one inherits
- `dhcpd.leases` in ISC format, and the Apple `bootpd` lease database
- `netmap.conf`: network names mapped to `vmnetN` devices
- the `networking` file: `answer VNET_…` lines, NAT port forwards, DHCP
  MAC-to-IP bindings, bridge mappings and NAT prefixes

It also has a few helpers. One checks export settings. One looks up the IPv4
address of a host interface through `ip` or `ifconfig`. One checks that a
license file is present.

The package has no dependencies beyond the standard library.

## Installation

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Usage

Every `read_*` function takes an open text stream or a string that holds the
file's contents.

### DHCP configuration (`vmwnet.dhcp_config`)

```python
from vmwnet.dhcp_config import read_dhcp_configuration

with open("/etc/vmware/vmnet8/dhcpd/dhcpd.conf") as fh:
    config = read_dhcp_configuration(fh)

print(config.global_declaration().describe())
subnet = config.subnet_by_address("172.16.41.10")
host = config.host_by_name("vmnet8")
print(host.ip4())
```

`read_dhcp_configuration` returns a `DhcpConfiguration`, which is a list of
`ConfigDeclaration` objects with the global block first. Each declaration
holds its `options`, `grants`, `attributes`, `parameters`, `expressions`,
`address` entries and `hostid` matches. These come from the block itself and
from every block that encloses it. A nested block overrides the blocks around
it.

`ip4()` and `ip6()` return the single fixed address of a declaration. If that
address is a host name, they resolve it. `hardware()` returns the hardware
address as `bytes`.

The lower layers are public too:

- `vmwnet.dhcp_params.parse_dhcp_config` builds a `TokenGroup` tree.
- `vmwnet.dhcp_params.parse_parameter` turns a single statement into a typed
  parameter, such as `OptionParameter` or `Range4Parameter`.
- `vmwnet.dhcp_config.flatten_dhcp_config` and `create_declaration` build the
  flattened declarations.

### Network map (`vmwnet.network_map`)

```python
from vmwnet.network_map import read_network_map

with open("/etc/vmware/netmap.conf") as fh:
    netmap = read_network_map(fh)

netmap.name_into_devices("NAT")     # e.g. ["vmnet8"]
netmap.device_into_name("vmnet0")   # e.g. "Bridged"
```

A `NetworkMap` is a list with one dict of attributes per network, sorted by
network identifier. Both lookups ignore case.

### The networking file (`vmwnet.networking`)

```python
from vmwnet.networking import read_networking_config

with open("/etc/vmware/networking") as fh:
    networking = read_networking_config(fh)

networking.name_into_devices("hostonly")   # e.g. ["vmnet1"]
networking.device_into_name("vmnet8")      # e.g. "nat"
```

Only version 1.0 of the file is accepted. The parser logs a warning for any
command line it cannot parse, and skips that line. The commands are applied
in order, and the result is a `NetworkingConfig` with these fields:

- `answer`
- `nat_port_fwd`
- `dhcp_mac_to_ip`
- `bridge_mapping`
- `nat_prefix`

`interface_types` gives the `NetworkingType` of each vmnet number. Numbers 0,
1 and 8 have defaults of bridged, host-only and NAT. `names_to_vmnet` groups
the numbers by type.

### Leases (`vmwnet.leases`)

```python
from vmwnet.leases import read_dhcpd_lease_entries, read_apple_dhcpd_lease_entries

with open("/etc/vmware/vmnet8/dhcpd/dhcpd.leases") as fh:
    leases = read_dhcpd_lease_entries(fh)
```

`read_dhcpd_lease_entries` returns a list of `DhcpLeaseEntry`. Each entry
holds the address, the start and end times in UTC, the weekdays, the
ethernet address and uid as bytes, and any other statements it holds.

`read_apple_dhcpd_lease_entries` returns a list of `AppleDhcpLeaseEntry`.

If some entries are malformed, `LeaseParseError` is raised. Its `entries`
attribute holds the entries that did parse, and its `errors` attribute holds
the individual failures.

### Helpers

- `vmwnet.export_config.ExportConfig(format=...)`: `prepare()` returns a list
  of `ValueError` for settings that are not valid. The allowed formats are
  `ovf`, `ova` and `vmx`.
- `vmwnet.host_ip.IfconfigIPFinder(device="vmnet8").host_ip()`: runs
  `ip address show dev <device>` first. If that gives no address, it runs
  `ifconfig <device>`. The module-level functions `ip_address` and `ifconfig`
  run just one of the two commands.
- `vmwnet.license.check_license(verify_version, glob, no_license_version)`:
  calls `verify_version`. If that raises `LicenseRequiredError`, the function
  searches for `/etc/vmware/license-ws-*`. It returns the license files it
  found. If none are found, it raises `FileNotFoundError`.

### Errors

- Malformed text raises `vmwnet.lexing.ParseError`, which is a subclass of
  `ValueError`.
- A lookup that finds nothing raises `LookupError`.

## What this package does not do

The package reads configuration and lease files. It does not drive a
hypervisor: it does not start, stop, clone or snapshot virtual machines, it
does not create or compact disks, and it does not find or check installed
hypervisor programs. It has no command-line tool. It does not write any of
the files it reads.