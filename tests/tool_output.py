"""Captured output of the external tools, shared by parser and source tests."""
from __future__ import annotations

SENSORS_OUTPUT = """coretemp-isa-0000
Adapter: ISA adapter
Package id 0:  +52.0°C  (high = +80.0°C, crit = +100.0°C)
Core 0:        +48.0°C  (high = +80.0°C, crit = +100.0°C)
Core 1:        +55.0°C  (high = +80.0°C, crit = +100.0°C)

acpitz-acpi-0
Adapter: ACPI interface
temp1:        +97.8°C  (crit = +105.0°C)

amdgpu-pci-0300
Adapter: PCI adapter
PPT:          18.00 W  (cap = 25.00 W)
power1:       12.50 W  (interval = 1.00 s)
"""

SS_OUTPUT = """Netid State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
udp   UNCONN 0      0      127.0.0.53%lo:53         0.0.0.0:*     users:(("systemd-resolve",pid=812,fd=13))
tcp   LISTEN 0      4096   0.0.0.0:22               0.0.0.0:*     users:(("sshd",pid=1034,fd=3))
tcp   LISTEN 0      511    [::]:80                  [::]:*
"""

NETSTAT_OUTPUT = """Active Internet connections (only servers)
Proto Recv-Q Send-Q Local Address           Foreign Address         State       PID/Program name
tcp        0      0 0.0.0.0:22              0.0.0.0:*               LISTEN      1034/sshd
tcp6       0      0 :::80                   :::*                    LISTEN      -
udp        0      0 127.0.0.53:53           0.0.0.0:*                           812/systemd-resolve
"""

SS_ESTABLISHED_OUTPUT = """Netid State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
tcp   LISTEN 0      4096   0.0.0.0:22               0.0.0.0:*     users:(("sshd",pid=1034,fd=3))
tcp   ESTAB  0      0      192.168.1.10:22          192.168.1.20:51234 users:(("sshd",pid=2201,fd=4))
tcp   ESTAB  0      0      192.168.1.10:41822       140.82.112.3:443 users:(("firefox",pid=3120,fd=91))
"""

NETSTAT_ESTABLISHED_OUTPUT = """Active Internet connections (servers and established)
Proto Recv-Q Send-Q Local Address           Foreign Address         State       PID/Program name
tcp        0      0 0.0.0.0:22              0.0.0.0:*               LISTEN      1034/sshd
tcp        0      0 192.168.1.10:41822      140.82.112.3:443        ESTABLISHED 3120/firefox
"""

DOCKER_PS_OUTPUT = "\n".join(
    [
        '{"CreatedAt":"2024-05-01 10:00:00 +0000 UTC","ID":"abc123","Image":"nginx:latest",'
        '"Names":"web","Ports":"0.0.0.0:8080->80/tcp, 443/tcp","State":"running","Status":"Up 2 days"}',
        '{"CreatedAt":"2024-05-02 08:30:00 +0000 UTC","ID":"def456","Image":"redis:7",'
        '"Names":"cache","Ports":"","State":"exited","Status":"Exited (0) 3 hours ago"}',
        "this is not json",
        '{"ID":"ghi789","Names":"broken","State":"running"}',
        "",
    ]
)

DOCKER_STATS_OUTPUT = "\n".join(
    [
        '{"BlockIO":"0B / 0B","CPUPerc":"1.50%","Container":"abc123","ID":"abc123","MemPerc":"25.00%",'
        '"MemUsage":"512MiB / 2GiB","Name":"web","NetIO":"1.5GiB / 2048KiB","PIDs":"5"}',
        "{garbage",
    ]
)
