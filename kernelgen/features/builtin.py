"""Built-in feature overlays and configuration fragments.

Two overlays are shipped: SukiSU Ultra (a KernelSU fork providing root
privilege management) and SUSFS (filesystem-level root hiding). The
privilege overlay is always integrated before the hiding overlay.
"""

from kernelgen.features.schema import FeatureSpec
from kernelgen.types import FeatureToggles

# Shared by every root feature; applied once when any overlay is enabled.
ROOT_FEATURES_FRAGMENT: dict[str, str | None] = {
    # Security subsystem
    "CONFIG_SECURITY": "y",
    "CONFIG_SECURITY_NETWORK": "y",
    "CONFIG_LSM": '"lockdown,yama,loadpin,safesetid,integrity,selinux,smack,tomoyo,apparmor"',
    "CONFIG_SECURITY_SELINUX": "y",
    "CONFIG_SECURITY_SELINUX_BOOTPARAM": "y",
    "CONFIG_SECURITY_SELINUX_DEVELOP": "y",
    "CONFIG_SECURITY_SELINUX_AVC_STATS": "y",
    "CONFIG_SECURITY_SELINUX_CHECKREQPROT_VALUE": "0",
    "CONFIG_SECURITY_SELINUX_SIDTAB_HASH_BITS": "9",
    "CONFIG_SECURITY_SELINUX_SID2STR_CACHE_SIZE": "256",
    # Loadable modules
    "CONFIG_MODULES": "y",
    "CONFIG_MODULE_UNLOAD": "y",
    "CONFIG_MODVERSIONS": "y",
    "CONFIG_MODULE_SRCVERSION_ALL": "y",
    # Overlay and pseudo filesystems
    "CONFIG_OVERLAY_FS": "y",
    "CONFIG_OVERLAY_FS_REDIRECT_DIR": "y",
    "CONFIG_OVERLAY_FS_REDIRECT_ALWAYS_FOLLOW": "y",
    "CONFIG_OVERLAY_FS_INDEX": "y",
    "CONFIG_OVERLAY_FS_NFS_EXPORT": "y",
    "CONFIG_OVERLAY_FS_XINO_AUTO": "y",
    "CONFIG_OVERLAY_FS_METACOPY": "y",
    "CONFIG_FUSE_FS": "y",
    "CONFIG_CUSE": "y",
    "CONFIG_PROC_FS": "y",
    "CONFIG_PROC_SYSCTL": "y",
    "CONFIG_SYSFS": "y",
    "CONFIG_TMPFS": "y",
    "CONFIG_TMPFS_POSIX_ACL": "y",
    "CONFIG_TMPFS_XATTR": "y",
    # Hardening
    "CONFIG_SECURITY_DMESG_RESTRICT": "y",
    "CONFIG_SECURITY_PERF_EVENTS_RESTRICT": "y",
    "CONFIG_FORTIFY_SOURCE": None,
    "CONFIG_HARDENED_USERCOPY": "y",
    "CONFIG_HARDENED_USERCOPY_FALLBACK": "y",
    "CONFIG_SLAB_FREELIST_RANDOM": "y",
    "CONFIG_SLAB_FREELIST_HARDENED": "y",
    "CONFIG_SHUFFLE_PAGE_ALLOCATOR": "y",
    "CONFIG_SLUB_DEBUG": "y",
    "CONFIG_STRICT_KERNEL_RWX": "y",
    "CONFIG_STRICT_MODULE_RWX": "y",
    "CONFIG_PAGE_TABLE_ISOLATION": "y",
    "CONFIG_RETPOLINE": "y",
    "CONFIG_SLS": "y",
    # Mount notifications and quotas
    "CONFIG_FANOTIFY": "y",
    "CONFIG_FANOTIFY_ACCESS_PERMISSIONS": "y",
    "CONFIG_QUOTA": "y",
    "CONFIG_QFMT_V2": "y",
    "CONFIG_QUOTACTL": "y",
    # Namespace isolation
    "CONFIG_NAMESPACES": "y",
    "CONFIG_UTS_NS": "y",
    "CONFIG_IPC_NS": "y",
    "CONFIG_USER_NS": "y",
    "CONFIG_PID_NS": "y",
    "CONFIG_NET_NS": "y",
    "CONFIG_CGROUP_NS": "y",
    "CONFIG_SECURITY_FILE_CAPABILITIES": "y",
    "CONFIG_AUDIT": "y",
    "CONFIG_AUDITSYSCALL": "y",
    # Symbol table for runtime lookups
    "CONFIG_KALLSYMS": "y",
    "CONFIG_KALLSYMS_ALL": "y",
    "CONFIG_KALLSYMS_ABSOLUTE_PERCPU": "y",
    "CONFIG_KALLSYMS_BASE_RELATIVE": "y",
    # Keep warnings from failing the build
    "CONFIG_WERROR": None,
    "CONFIG_COMPILE_TEST": "n",
    "CONFIG_CLK_QCOM": None,
}

SUKISU_FEATURE = FeatureSpec(
    name="sukisu-ultra",
    display_name="SukiSU Ultra",
    label="SukiSU",
    repo={"url": "https://github.com/SukiSU-Ultra/SukiSU-Ultra.git"},
    integration="full",
    setup_script="kernel/setup.sh",
    setup_args=["susfs-main"],
    markers=["drivers/kernelsu", "drivers/kernelsu/Makefile"],
    driver={"source": "kernel/drivers/kernelsu", "dest": "drivers/kernelsu"},
    required_files=[
        "drivers/kernelsu/Makefile",
        "drivers/kernelsu/core_hook.c",
        "drivers/kernelsu/ksu.c",
    ],
    patches_dir="kernel/patches",
    aux_dirs=[
        {"source": "kernel/include", "dest": "include"},
        {"source": "kernel/fs", "dest": "fs"},
    ],
    config_fragment={"CONFIG_KPM": "y"},
    source_fixups=[
        {
            "path": "drivers/kernelsu/kpm/kpm.c",
            "old": "if(copy_to_user(result, &res, sizeof(res)) < 1)",
            "new": "if(put_user(res, (int __user *)result))",
        }
    ],
)

SUSFS_FEATURE = FeatureSpec(
    name="susfs",
    display_name="SUSFS",
    label="SUSFS",
    repo={"url": "https://github.com/sidex15/susfs4ksu-module.git"},
    integration="light",
    patches_dir="kernel_patches",
    filesystem={"source": "ksu_module_susfs/jni", "dest": "fs/susfs"},
    header={
        "source": "ksu_module_susfs/jni/susfs.h",
        "dest": "include/linux/susfs.h",
        "guard": "CONFIG_KSU_SUSFS",
    },
    config_fragment={
        "CONFIG_KSU_SUSFS": "y",
        "CONFIG_KSU_SUSFS_SUS_PATH": "y",
        "CONFIG_KSU_SUSFS_SUS_MOUNT": "y",
        "CONFIG_KSU_SUSFS_SUS_KSTAT": "y",
        "CONFIG_KSU_SUSFS_SUS_OVERLAYFS": "y",
        "CONFIG_KSU_SUSFS_TRY_UMOUNT": "y",
        "CONFIG_KSU_SUSFS_SPOOF_UNAME": "y",
        "CONFIG_KSU_SUSFS_ENABLE_LOG": "y",
    },
)

# Integration order
FEATURES: tuple[FeatureSpec, ...] = (SUKISU_FEATURE, SUSFS_FEATURE)


def feature_states(toggles: FeatureToggles) -> list[tuple[FeatureSpec, bool]]:
    """Pair each built-in overlay with its enabled flag, in integration order."""
    return [
        (SUKISU_FEATURE, toggles.privilege_overlay),
        (SUSFS_FEATURE, toggles.hiding_overlay),
    ]


def enabled_features(toggles: FeatureToggles) -> list[FeatureSpec]:
    """Return the enabled overlays in integration order."""
    return [spec for spec, enabled in feature_states(toggles) if enabled]


__all__ = [
    "FEATURES",
    "ROOT_FEATURES_FRAGMENT",
    "SUKISU_FEATURE",
    "SUSFS_FEATURE",
    "enabled_features",
    "feature_states",
]
