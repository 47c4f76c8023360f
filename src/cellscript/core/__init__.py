"""Grid, topology, value model and the generation stepper."""
