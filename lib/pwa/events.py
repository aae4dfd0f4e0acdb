# =============================================================================
# lib/pwa/events.py - PWA Lifecycle Event Catalogue
# =============================================================================
# Event names emitted by the install and push prompts, plus the lifecycle
# names that the telemetry funnels count.
# =============================================================================

# Service worker / installability
SW_REGISTERED = "ku-pwa-sw-registered"
SW_REGISTRATION_FAILED = "ku-pwa-sw-registration-failed"
INSTALLABLE = "ku-pwa-installable"
APP_INSTALLED = "ku-pwa-installed"

# Rollout
ROLLOUT_ENABLED = "ku-pwa-rollout-enabled"
ROLLOUT_DISABLED = "ku-pwa-rollout-disabled"

# Install prompt
INSTALL_PROMPT_SHOWN = "ku-pwa-install-prompt-shown"
INSTALL_CTA_CLICKED = "ku-pwa-install-cta-clicked"
INSTALL_GUIDE_OPENED = "ku-pwa-install-guide-opened"
INSTALL_MINIMIZED = "ku-pwa-install-minimized"
INSTALL_ACCEPTED = "ku-pwa-install-accepted"
INSTALL_DISMISSED = "ku-pwa-install-dismissed"

# Push prompt
PUSH_PROMPT_SHOWN = "ku-pwa-push-prompt-shown"
PUSH_ENABLED = "ku-pwa-push-enabled"
PUSH_DISMISSED = "ku-pwa-push-dismissed"
PUSH_PERMISSION_DENIED = "ku-pwa-push-permission-denied"
PUSH_ENABLE_FAILED = "ku-pwa-push-enable-failed"

VARIANT_STAGES = ("shown", "cta-clicked", "accepted")


def install_variant_event(variant: str, stage: str) -> str:
    """
    Name of the per-variant install event.

    Example:
        install_variant_event("spotlight", "shown")
        # "ku-pwa-install-variant-spotlight-shown"
    """
    if stage not in VARIANT_STAGES:
        raise ValueError(f"Unknown variant stage: {stage}")
    return f"ku-pwa-install-variant-{variant}-{stage}"


# Browser event name -> lifecycle metric name used by the funnels
LIFECYCLE_NAMES: dict[str, str] = {
    SW_REGISTERED: "sw_registered",
    SW_REGISTRATION_FAILED: "sw_registration_failed",
    INSTALLABLE: "install_prompt_available",
    APP_INSTALLED: "app_installed",
    ROLLOUT_ENABLED: "rollout_enabled",
    ROLLOUT_DISABLED: "rollout_disabled",
    INSTALL_CTA_CLICKED: "install_cta_clicked",
    INSTALL_GUIDE_OPENED: "install_guide_opened",
    INSTALL_MINIMIZED: "install_minimized",
    INSTALL_PROMPT_SHOWN: "install_prompt_shown",
    INSTALL_ACCEPTED: "install_accepted",
    INSTALL_DISMISSED: "install_dismissed",
    PUSH_PROMPT_SHOWN: "push_prompt_shown",
    PUSH_ENABLED: "push_enabled",
    PUSH_DISMISSED: "push_dismissed",
    PUSH_PERMISSION_DENIED: "push_permission_denied",
    PUSH_ENABLE_FAILED: "push_enable_failed",
}

for _variant in ("control", "spotlight"):
    for _stage in VARIANT_STAGES:
        LIFECYCLE_NAMES[install_variant_event(_variant, _stage)] = (
            f"install_variant_{_variant}_{_stage.replace('-', '_')}"
        )


def lifecycle_name(event_name: str) -> str | None:
    return LIFECYCLE_NAMES.get(event_name)
