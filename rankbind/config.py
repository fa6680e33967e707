import copy
import logging
import os

import rankbind.defaults as defaults
import rankbind.utils as utils
from rankbind.errors import ValidationError
from rankbind.placement.context import MaskPolicy, RankContext

log = logging.getLogger(__name__)

# Settings that can come from the settings file, the environment, or flags
default_settings = {
    "mask_policy": defaults.mask_policy,
    "device_bias": 0,
    "allow": [],
    "devices_per_set": None,
    "sysfs_root": defaults.sysfs_root,
    "drivers": list(defaults.drivers),
    "rocminfo": defaults.rocminfo,
    "cpu_bind": defaults.cpu_bind,
    "verbose": False,
    "local_size": None,
    "local_rank": None,
}

integer_settings = ["device_bias", "devices_per_set", "local_size", "local_rank"]
list_settings = ["allow", "drivers"]


def parse_integer(value, source):
    if value is None or isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{source} must be an integer, got '{value}'.")


def parse_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


def parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ["1", "true", "yes", "on"]


class Settings:
    """
    Layered settings: defaults, then a yaml settings file, then the
    environment, then command line flags (see update_from_args).
    """

    def __init__(self, filename=None, env=None):
        self.env = os.environ if env is None else env
        self.settings = copy.deepcopy(default_settings)
        self.filename = filename or self.env.get(defaults.config_envar)
        if self.filename:
            self.load(self.filename)
        self.update_from_environment()

    def __getattr__(self, key):
        settings = self.__dict__.get("settings") or {}
        if key in settings:
            return settings[key]
        raise AttributeError(key)

    def load(self, filename):
        """
        Load a yaml settings file (a flat mapping).
        """
        log.debug(f"Loading settings from {filename}")
        content = utils.read_yaml(filename) or {}
        if not isinstance(content, dict):
            raise ValueError(f"Settings file {filename} must contain a mapping.")
        self.update(content, source=filename)

    def set(self, key, value, source="settings"):
        if key not in self.settings:
            raise ValueError(f"Unknown setting '{key}' in {source}.")
        if key in integer_settings:
            value = parse_integer(value, f"{key} ({source})")
        elif key in list_settings:
            value = parse_list(value)
        elif key == "verbose":
            value = parse_bool(value)
        elif key == "mask_policy":
            value = MaskPolicy.parse(value)
            if value == MaskPolicy.PRESET:
                raise ValidationError(
                    f"mask_policy ({source}) cannot be 'preset', set "
                    f"{defaults.visible_devices_envar} or {defaults.cu_mask_envar} instead."
                )
            value = value.value
        elif key == "cpu_bind" and value not in defaults.cpu_bind_modes:
            raise ValidationError(
                f"cpu_bind ({source}) must be one of {defaults.cpu_bind_modes}, got '{value}'."
            )
        self.settings[key] = value

    def update(self, values, source="settings"):
        for key, value in values.items():
            self.set(key, value, source)

    def update_from_environment(self):
        """
        Read RANKBIND_<SETTING> variables, plus the launcher rank geometry.
        """
        for key in self.settings:
            name = f"{defaults.envar_prefix}{key.upper()}"
            value = self.env.get(name)
            if value not in [None, ""]:
                self.set(key, value, source=name)

        if self.settings["local_size"] is None:
            name, value = utils.first_envar(defaults.local_size_envars, self.env)
            if name:
                self.set("local_size", value, source=name)
        if self.settings["local_rank"] is None:
            name, value = utils.first_envar(defaults.local_rank_envars, self.env)
            if name:
                self.set("local_rank", value, source=name)

    def update_from_args(self, args):
        """
        Flags win over everything. Unset flags (None) are ignored.
        """
        for key in self.settings:
            value = getattr(args, key, None)
            if value is None or (key in list_settings and not value):
                continue
            if key == "verbose" and value is False:
                continue
            self.set(key, value, source=f"--{key.replace('_', '-')}")

    @property
    def preset_devices(self):
        value = self.env.get(defaults.visible_devices_envar)
        if not value:
            return None
        return tuple(parse_list(value))

    @property
    def preset_cu_mask(self):
        return self.env.get(defaults.cu_mask_envar) or None

    def rank_context(self, local_rank=None) -> RankContext:
        """
        Build the rank context for this (or a given) local rank.
        """
        if local_rank is None:
            local_rank = self.settings["local_rank"] or 0
        context = RankContext(
            total_local_ranks=self.settings["local_size"] or 1,
            local_rank=local_rank,
            device_bias=self.settings["device_bias"],
            mask_policy=self.settings["mask_policy"],
            preset_devices=self.preset_devices,
            preset_cu_mask=self.preset_cu_mask,
            devices_per_set=self.settings["devices_per_set"],
        )
        if context.is_preset:
            log.debug(
                f"Using preset devices '{self.env.get(defaults.visible_devices_envar)}' "
                f"and CU mask '{self.preset_cu_mask}' from the environment."
            )
        return context
