"""Discovery submodules: entities in, candidate URLs out."""
