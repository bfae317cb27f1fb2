"""
Command line entry point for image-to-MusicXML conversion.

Runs the stage machine over one scanned page and writes the MusicXML score.
Stage renderings and the row projection plot used to straighten the page can
be saved alongside it.
"""

import argparse
import logging
import sys
from pathlib import Path

import cv2

from image_to_musicxml.exceptions import PipelineError
from image_to_musicxml.models import ExportParams, ProcessingParameters
from image_to_musicxml.pipeline import Stage, StageMachine
from image_to_musicxml.visualization import create_projection_figure

logger = logging.getLogger(__name__)


def write_stage_images(machine: StageMachine, directory: Path) -> list[Path]:
    """Save the rendering of every computed stage, and its overlay, as PNG."""
    directory.mkdir(parents=True, exist_ok=True)
    written = []
    for stage in Stage:
        image = machine.stage_image(stage)
        if image is None:
            continue
        name = f"{int(stage)}_{stage.name.lower()}"
        path = directory / f"{name}.png"
        cv2.imwrite(str(path), cv2.cvtColor(image, cv2.COLOR_RGB2BGR))
        written.append(path)

        layer = machine.stage_layer(stage)
        if layer is not None:
            path = directory / f"{name}_layers.png"
            cv2.imwrite(str(path), cv2.cvtColor(layer, cv2.COLOR_RGB2BGR))
            written.append(path)
    logger.info(f"Wrote {len(written)} stage images to {directory}")
    return written


def write_projection(machine: StageMachine, path: Path) -> bool:
    """Save the row projection plot of the straightened page.

    Args:
        machine: Stage machine that has at least run the deskew stage.
        path: Destination image file.

    Returns:
        False when the deskew stage has not run yet, True once saved.
    """
    if machine.deskew_result is None:
        logger.warning("No projection available, the page was not straightened")
        return False
    mask = machine.deskew_result.binary_mask
    threshold = mask.shape[1] * machine.params.deskew.threshold_ratio
    figure = create_projection_figure(machine.deskew_result.histogram, threshold)
    figure.savefig(path)
    return True


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="image-to-musicxml",
        description="Recognize a scanned score and export it as MusicXML",
    )
    parser.add_argument("input", type=str, help="Path to the score image")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default="output.xml",
        help="MusicXML file to write (default: output.xml)",
    )
    parser.add_argument(
        "--stages-dir",
        type=str,
        help="Directory receiving a PNG rendering of every pipeline stage",
    )
    parser.add_argument(
        "--projection",
        type=str,
        help="PNG file receiving the horizontal projection plot",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug output")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    params = ProcessingParameters(export=ExportParams(output_path=args.output))
    try:
        machine = StageMachine.load(args.input, params)
        result = machine.run()
    except PipelineError as e:
        logger.error(str(e))
        sys.exit(1)

    if args.stages_dir:
        write_stage_images(machine, Path(args.stages_dir))
    if args.projection:
        write_projection(machine, Path(args.projection))

    if result is None:
        logger.error(f"Recognition stopped after stage {int(machine.stage)}")
        sys.exit(1)
    print(f"Wrote {len(result.document.measures)} measures to {result.output_path}")


if __name__ == "__main__":
    main()
