"""The table of all checks, command-line style enabling and running them."""

from __future__ import annotations

import sys
from typing import Iterator

from devtreecheck.checker import Check
from devtreecheck.providers import add_provider_checks
from devtreecheck.tree import DtInfo

# The order in which checks are run and listed.
_CHECK_ORDER = (
    "duplicate_node_names", "duplicate_property_names",
    "node_name_chars", "node_name_format", "property_name_chars",
    "name_is_string", "name_properties", "node_name_vs_property_name",
    "duplicate_label",
    "explicit_phandles",
    "phandle_references", "path_references",
    "omit_unused_nodes",
    "address_cells_is_cell", "size_cells_is_cell",
    "device_type_is_string", "model_is_string", "status_is_string",
    "label_is_string",
    "compatible_is_string_list", "names_is_string_list",
    "property_name_chars_strict",
    "node_name_chars_strict",
    "addr_size_cells", "reg_format", "ranges_format", "dma_ranges_format",
    "unit_address_vs_reg",
    "unit_address_format",
    "pci_bridge",
    "pci_device_reg",
    "pci_device_bus_num",
    "simple_bus_bridge",
    "simple_bus_reg",
    "i2c_bus_bridge",
    "i2c_bus_reg",
    "spi_bus_bridge",
    "spi_bus_reg",
    "avoid_default_addr_size",
    "avoid_unnecessary_addr_size",
    "unique_unit_address",
    "unique_unit_address_if_enabled",
    "obsolete_chosen_interrupt_controller",
    "chosen_node_is_root", "chosen_node_bootargs", "chosen_node_stdout_path",
    "clocks_property", "clocks_is_cell",
    "cooling_device_property", "cooling_device_is_cell",
    "dmas_property", "dmas_is_cell",
    "hwlocks_property", "hwlocks_is_cell",
    "interrupts_extended_property", "interrupts_extended_is_cell",
    "io_channels_property", "io_channels_is_cell",
    "iommus_property", "iommus_is_cell",
    "mboxes_property", "mboxes_is_cell",
    "msi_parent_property", "msi_parent_is_cell",
    "mux_controls_property", "mux_controls_is_cell",
    "phys_property", "phys_is_cell",
    "power_domains_property", "power_domains_is_cell",
    "pwms_property", "pwms_is_cell",
    "resets_property", "resets_is_cell",
    "sound_dai_property", "sound_dai_is_cell",
    "thermal_sensors_property", "thermal_sensors_is_cell",
    "deprecated_gpio_property",
    "gpios_property",
    "interrupts_property",
    "interrupt_provider",
    "interrupt_map",
    "alias_paths",
    "graph_nodes", "graph_child_address", "graph_port", "graph_endpoint",
    "always_fail",
)


class ChecksFailed(Exception):
    """Raised when the tree has errors and output was not forced."""


class CheckRegistry:
    """All known checks, in the order they are run."""

    def __init__(self) -> None:
        table = add_provider_checks({})
        self._checks: dict[str, Check] = {name: table[name] for name in _CHECK_ORDER}

    def __iter__(self) -> Iterator[Check]:
        return iter(self._checks.values())

    def __len__(self) -> int:
        return len(self._checks)

    def get(self, name: str) -> Check:
        """Return the check of the given name; raise KeyError if there is none."""
        try:
            return self._checks[name]
        except KeyError:
            raise KeyError(f"Unrecognized check name \"{name}\"") from None

    def names(self) -> list[str]:
        """Names of all checks, in run order."""
        return list(self._checks)

    def _enable(self, check: Check, warn: bool, error: bool) -> None:
        # Raising the level also raises it for the prerequisites.
        if (warn and not check.warn) or (error and not check.error):
            for prereq in check.prereqs:
                self._enable(prereq, warn, error)
        check.warn = check.warn or warn
        check.error = check.error or error

    def _disable(self, check: Check, warn: bool, error: bool) -> None:
        # Lowering the level also lowers it for the checks that depend on this one.
        if (warn and check.warn) or (error and check.error):
            for other in self._checks.values():
                if any(p is check for p in other.prereqs):
                    self._disable(other, warn, error)
        check.warn = check.warn and not warn
        check.error = check.error and not error

    def parse_option(self, warn: bool, error: bool, arg: str) -> None:
        """Enable a check, or disable it if ``arg`` starts with "no-" or "no_"."""
        name = arg
        enable = True
        if arg.startswith(("no-", "no_")):
            name = arg[3:]
            enable = False
        check = self._checks.get(name)
        if check is None:
            raise ValueError(f"Unrecognized check name \"{name}\"")
        if enable:
            self._enable(check, warn, error)
        else:
            self._disable(check, warn, error)

    def process(self, force: bool, dti: DtInfo) -> bool:
        """Run every enabled check; return True if any reported an error.

        Raises ChecksFailed on errors unless ``force`` is set.
        """
        error = False
        for check in self._checks.values():
            if check.warn or check.error:
                error = check.run(dti) or error
        if error:
            if not force:
                raise ChecksFailed(
                    "ERROR: Input tree has errors, aborting (use -f to force output)"
                )
            if dti.quiet < 3:
                sys.stderr.write("Warning: Input tree has errors, output forced\n")
        return error