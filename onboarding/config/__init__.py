# onboarding/config package
# YAML-backed flow registry (flows.yaml, flows/<key>.yaml) and runtime settings (runtime.yaml).
