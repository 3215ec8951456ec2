import ipaddress

import pytest

from netping import (
    Target,
    TargetKind,
    classify_target_line,
    count_targets,
    enumerate_targets,
    iter_network_addresses,
    iter_target_lines,
    next_ipv4_address,
    strip_target_line,
)


@pytest.mark.parametrize(
    "line, expected_kind",
    [
        ("8.8.8.8", TargetKind.SINGLE_ADDRESS),
        ("1.1.1.1/32", TargetKind.RANGE_MEMBER),
        ("192.168.1.0/24", TargetKind.RANGE_MEMBER),
        ("10.0.0.7/30", TargetKind.RANGE_MEMBER),
        ("example.com", TargetKind.DOMAIN_NAME),
        ("host.internal.example", TargetKind.DOMAIN_NAME),
    ],
)
def test_classify_valid_lines(line, expected_kind):
    classification = classify_target_line(line)
    assert classification is not None
    assert classification[0] is expected_kind


@pytest.mark.parametrize("line", ["not-a-line!!", "localhost", "", "::1", "2001:db8::/64", "::ffff:10.0.0.1"])
def test_classify_malformed_lines(line):
    assert classify_target_line(line) is None


def test_invalid_prefix_with_dot_falls_back_to_domain():
    kind, network = classify_target_line("10.0.0.0/33")
    assert kind is TargetKind.DOMAIN_NAME
    assert network is None


def test_strip_target_line_drops_comments():
    assert strip_target_line("  8.8.8.8          # single address\n") == "8.8.8.8"
    assert strip_target_line("# only a comment") == ""
    assert strip_target_line("   \n") == ""


def test_next_ipv4_address_carries_across_octets():
    assert next_ipv4_address(bytes([10, 0, 0, 1])) == bytes([10, 0, 0, 2])
    assert next_ipv4_address(bytes([10, 0, 0, 255])) == bytes([10, 0, 1, 0])
    assert next_ipv4_address(bytes([10, 255, 255, 255])) == bytes([11, 0, 0, 0])
    assert next_ipv4_address(bytes([255, 255, 255, 255])) == bytes([0, 0, 0, 0])


@pytest.mark.parametrize("prefix", [32, 31, 30, 29, 28, 24, 22, 20])
def test_range_expands_to_power_of_two_members(prefix):
    network = ipaddress.IPv4Network(f"172.16.0.0/{prefix}")
    addresses = list(iter_network_addresses(network))
    assert len(addresses) == 2 ** (32 - prefix)
    assert len(set(addresses)) == len(addresses)
    assert addresses[0] == str(network.network_address)
    assert addresses[-1] == str(network.broadcast_address)


def test_range_members_are_masked_and_inclusive():
    targets = list(enumerate_targets(["10.0.0.5/30"]))
    assert [target.resolved_address for target in targets] == [
        "10.0.0.4",
        "10.0.0.5",
        "10.0.0.6",
        "10.0.0.7",
    ]
    assert all(target.kind is TargetKind.RANGE_MEMBER for target in targets)
    assert all(target.raw == "10.0.0.5/30" for target in targets)


def test_large_range_is_expanded_lazily():
    members = enumerate_targets(["10.0.0.0/8"])
    first = next(members)
    second = next(members)
    assert first.resolved_address == "10.0.0.0"
    assert second.resolved_address == "10.0.0.1"


def test_domain_targets_start_unresolved():
    (target,) = list(enumerate_targets(["example.com"]))
    assert target.kind is TargetKind.DOMAIN_NAME
    assert target.resolved_address is None

    resolved = target.with_resolution("93.184.216.34")
    assert resolved.resolved_address == "93.184.216.34"
    assert target.resolved_address is None
    with pytest.raises(ValueError):
        resolved.with_resolution("10.0.0.1")


def test_single_address_is_resolved_at_creation():
    (target,) = list(enumerate_targets(["  8.8.8.8  "]))
    assert target == Target(raw="8.8.8.8", kind=TargetKind.SINGLE_ADDRESS, resolved_address="8.8.8.8")


def test_counting_pass_matches_enumeration_pass():
    lines = [
        "1.1.1.1/32",
        "not-a-line!!",
        "",
        "10.0.0.0/30",
        "8.8.8.8",
        "example.com   # resolved later",
        "192.168.0.0/27",
        "::1",
    ]
    malformed_first, malformed_second = [], []

    total = count_targets(lines, on_malformed=malformed_first.append)
    targets = list(enumerate_targets(lines, on_malformed=malformed_second.append))

    assert total == len(targets) == 1 + 4 + 1 + 1 + 32
    assert malformed_first == malformed_second == ["not-a-line!!", "::1"]


def test_iter_target_lines_reads_file_each_time(tmp_path):
    targets_file = tmp_path / "targets.txt"
    targets_file.write_text("8.8.8.8\n\n# comment\n10.0.0.0/31\n", encoding="utf-8")

    assert count_targets(iter_target_lines(str(targets_file))) == 3
    assert [target.resolved_address for target in enumerate_targets(iter_target_lines(str(targets_file)))] == [
        "8.8.8.8",
        "10.0.0.0",
        "10.0.0.1",
    ]


def test_iter_target_lines_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        list(iter_target_lines(str(tmp_path / "missing.txt")))
