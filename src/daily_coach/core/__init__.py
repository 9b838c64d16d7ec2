"""Planning core: context models, experts, resolver, assembler, fallback."""
