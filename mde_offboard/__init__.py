"""Microsoft Defender for Endpoint device offboarding console."""
