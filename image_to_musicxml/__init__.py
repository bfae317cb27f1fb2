"""Image-to-MusicXML conversion library.

This package provides an optical music recognition pipeline that reads a
scanned page of printed sheet music and writes the recognized score as a
MusicXML document.

The main processing pipeline consists of:
1. Binarization and deskewing
2. Staff line, stem and bar line removal
3. Patching of symbols broken by line removal
4. Connected component labelling and bounding boxes
5. Rule-based symbol recognition and MusicXML export

Example:
    Basic usage through the pipeline API:

    >>> from image_to_musicxml.image_loading import load_image
    >>> from image_to_musicxml.pipeline import process_complete_pipeline
    >>> from image_to_musicxml.models import ProcessingParameters
    >>>
    >>> page = load_image("score.png")
    >>> result = process_complete_pipeline(page.image, ProcessingParameters())
    >>> print(result.musicxml)
"""
