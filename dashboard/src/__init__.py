"""Dashboard client: the gated realtime broker connection behind the live view."""
