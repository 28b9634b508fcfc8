import pynvml
import pytest

from gpufan.lib.errors import DataUnavailable
from gpufan.lib.pcie import PcieInfo, read_pcie_info, scan_pcie_info


def test_degraded_link_is_reported(make_device, capsys):
    dev = make_device(
        index=0,
        uuid="GPU-abc",
        link_width=8,
        max_link_width=16,
        link_speed=3,
        link_generation=3,
        max_link_generation=4,
        max_pcie_generation=5,
    )
    info = scan_pcie_info(dev)

    assert info == PcieInfo(
        index=0,
        uuid="GPU-abc",
        link_width=8,
        max_link_width=16,
        link_speed=3,
        link_generation=3,
        max_link_generation=4,
        max_pcie_generation=5,
    )
    assert capsys.readouterr().out == (
        "GPU 0: UUID=GPU-abc, LinkWidth=8(MAX:16), LinkGeneration=3(MAX:4,Pcie: 5)\n"
    )


@pytest.mark.parametrize("width, max_width", [(16, 16), (16, 8), (1, 1)])
def test_full_width_link_is_not_a_finding(make_device, capsys, width, max_width):
    dev = make_device(link_width=width, max_link_width=max_width)
    assert scan_pcie_info(dev) is None
    # status line is printed whether or not the link is degraded
    assert f"LinkWidth={width}(MAX:{max_width})" in capsys.readouterr().out


@pytest.mark.parametrize(
    "method, field",
    [
        ("uuid", "UUID"),
        ("curr_pcie_link_width", "LinkWidth"),
        ("pcie_speed", "LinkSpeed"),
        ("max_pcie_link_width", "MaxLinkWidth"),
        ("curr_pcie_link_generation", "CurrentLinkGeneration"),
        ("gpu_max_pcie_link_generation", "MaxLinkGeneration"),
        ("max_pcie_link_generation", "MaxPcieGeneration"),
    ],
)
def test_read_failure_names_the_field(make_device, capsys, method, field):
    dev = make_device(link_width=4, max_link_width=16, failures={method: pynvml.NVML_ERROR_NOT_SUPPORTED})
    with pytest.raises(DataUnavailable) as exc:
        scan_pcie_info(dev)

    assert exc.value.field == field
    assert exc.value.status == pynvml.NVML_ERROR_NOT_SUPPORTED
    # fail fast: nothing read after the failing field
    assert dev.calls[-1] == (method,)
    assert capsys.readouterr().out == ""


def test_read_pcie_info_does_not_print(make_device, capsys):
    info = read_pcie_info(make_device(index=1, link_width=16, max_link_width=16))
    assert info.index == 1
    assert not info.degraded
    assert capsys.readouterr().out == ""
