"""Client core: session state, result rendering, wire client and import pipeline."""
