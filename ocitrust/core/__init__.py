"""Core engine: digests, blob writes, references, stores, and signatures."""
