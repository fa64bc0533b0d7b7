"""
distill - small-data text model trainer

Main modules:
- embedding: cached sentence-transformers embeddings
- learning: stratified splitting, classifier training, review feedback merge
- matching: cosine similarity and nearest-neighbor retrieval models
- data: example and review stores
- utils: project paths and YAML configuration
- pipeline: train / retrain / predict orchestration
"""

__version__ = "1.0.0"
