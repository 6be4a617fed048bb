"""
Index and Clustering Configuration

Policy constants shared by the enrichment, clustering and search-index
stages, plus the artifact names the explorer UI reads. Values that are
tuning knobs rather than contracts can be overridden from the environment.
"""

import os

# --- Embedding contract ---

# Must match the embedding model used in embeddings.py
EMBEDDING_DIMENSION = 384          # all-MiniLM-L6-v2


# --- Category aggregates / clustering dimensions ---

CATEGORY_SUMMARY = "summary"
CATEGORY_THEMES = "themes"
CATEGORY_COLLEGE_EXPERIENCE = "collegeExperience"
CATEGORY_QUOTES = "quotes"

CATEGORY_NAMES = [
    CATEGORY_SUMMARY,
    CATEGORY_THEMES,
    CATEGORY_COLLEGE_EXPERIENCE,
    CATEGORY_QUOTES,
]

# Summary categories that feed the collegeExperience aggregate (substring,
# case-insensitive)
COLLEGE_CATEGORY_KEYWORDS = ("college", "academic")

# Key under which per-tag sets live in vector-indices.json / clusters.json
TAGS_KEY = "tags"

CLUSTER_TYPES = CATEGORY_NAMES + [TAGS_KEY]


# --- k-means settings ---

DEFAULT_CLUSTER_COUNT = 3
MAX_KMEANS_ITERATIONS = 20
CONVERGENCE_TOLERANCE = 0.001

# Tags need at least this many contributing interviews to be clustered
MIN_TAG_MEMBERS = 2
MAX_TAG_CLUSTERS = 2


# --- Search index ---

SEARCH_REF_FIELD = "id"
SEARCH_FIELDS = [
    "title",
    "content",
    "demographics",
    "category",
    "sentiment",
    "tags",
]

SEMANTIC_SIMILARITY_THRESHOLD = float(
    os.getenv("SEMANTIC_SIMILARITY_THRESHOLD", "0.3")
)
SEMANTIC_RESULT_LIMIT = int(os.getenv("SEMANTIC_RESULT_LIMIT", "50"))


# --- Input / output files ---

# Files in the data directory that are never interview records
EXCLUDED_INPUT_FILES = frozenset({"base.json", ".test-files.json"})

INTERVIEWS_FILE = "interviews.json"
VECTOR_INDICES_FILE = "vector-indices.json"
CLUSTERS_FILE = "clusters.json"
SEARCH_INDEX_FILE = "search-index.json"
METADATA_FILE = "metadata.json"

OUTPUT_FILES = {
    "interviews": INTERVIEWS_FILE,
    "vector_indices": VECTOR_INDICES_FILE,
    "clusters": CLUSTERS_FILE,
    "search_index": SEARCH_INDEX_FILE,
    "metadata": METADATA_FILE,
}
