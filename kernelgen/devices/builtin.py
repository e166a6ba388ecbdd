"""Built-in device profiles."""

from kernelgen.devices.schema import DeviceProfileSchema

GARNET_PROFILE = DeviceProfileSchema.model_validate(
    {
        "device_id": "garnet",
        "name": "Redmi Note 13 Pro 5G",
        "kernel_name": "Garnet Kernel",
        "arch": "arm64",
        "kernel": {
            "url": "https://github.com/garnet-random/android_kernel_xiaomi_sm7435.git"
        },
        "devicetrees": {
            "url": "https://github.com/garnet-random/android_kernel_xiaomi_sm7435-devicetrees.git"
        },
        "modules": {
            "url": "https://github.com/garnet-random/android_kernel_xiaomi_sm7435-modules.git"
        },
        "defconfig_candidates": [
            "vendor/garnet_defconfig",
            "garnet_defconfig",
            "gki_defconfig",
        ],
        "device_fragment": "arch/arm64/configs/vendor/garnet_GKI.config",
        "installer": {
            "device_names": [
                "garnet",
                "2404CPCFG",
                "23127PC33G",
                "2404CPX3G",
                "24069PC21G",
            ],
            "supported_versions": "13-15",
            "archive_prefix": "Garnet-Kernel",
        },
    }
)

BUILTIN_PROFILES: dict[str, DeviceProfileSchema] = {
    GARNET_PROFILE.device_id: GARNET_PROFILE,
}

DEFAULT_DEVICE_ID = GARNET_PROFILE.device_id


__all__ = ["BUILTIN_PROFILES", "DEFAULT_DEVICE_ID", "GARNET_PROFILE"]
