"""Domain models for the image-to-musicxml application.

This module provides a centralized location for all data models used throughout
the optical music recognition pipeline. It includes:

- Core geometric models (BoundingBox, Stave, SymbolAnnotation)
- Score models (Note, Measure, ScoreDocument)
- Pipeline processing stage results (DeskewResult, StaffResult, etc.)
- Configuration parameters for each processing stage

All models are built using Pydantic for data validation and serialization,
ensuring type safety and clear interfaces between pipeline components.
"""

# Re-export core models
from image_to_musicxml.models.core_models import (
    BoundingBox,
    Stave,
    SymbolAnnotation,
    SymbolKind,
)

# Re-export score models
from image_to_musicxml.models.score_models import (
    Backup,
    Measure,
    MeasureAttributes,
    Note,
    ScoreDocument,
)

# Re-export pipeline models
from image_to_musicxml.models.pipeline_models import (
    BinaryResult,
    DeskewResult,
    StaffResult,
    VerticalLineResult,
    PatchResult,
    LabelResult,
    ComponentResult,
    BoundingBoxResult,
    RecognitionResult,
)

# Re-export setting models
from image_to_musicxml.models.settings_models import (
    DeskewParams,
    LineRemovalParams,
    RecognitionParams,
    ExportParams,
    ProcessingParameters,
)
