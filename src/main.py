"""
Card recognition application.

Detects cards in camera frames or still images, recognizes each card against
a reference embedding table, and reports the results.

Usage:
    python src/main.py --config config/config.yaml --display
    python src/main.py --image samples/card.jpg --output output/

Arguments:
    --config: Path to configuration file
    --image: Image file(s) or directories to run once and exit
    --source: Camera index or video file (overrides camera.device_id)
    --output: Directory for annotated images
    --display: Enable visual display for debugging
    --json: Print per-frame results as JSON lines
"""

import os
import sys
import argparse
import json
import logging
import yaml
import cv2
from typing import Dict, Any, List, Tuple, Optional, Union

from models.config import Config
from models.recognition import FrameResult
from observation import ImageFileSource, ImageFileSourceConfig, OpenCVSource, OpenCVSourceConfig
from ops.logging import setup_logging
from pipeline.dispatcher import FrameDispatcher
from pipeline.engine import create_engine_from_config
from pipeline.overlay import draw_results, format_label
from runtime.context import RuntimeContext, build_runtime


VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)
    """
    try:
        base_path = os.path.join(os.path.dirname(config_path), "default.yaml")
        base_cfg: Dict[str, Any] = {}
        if os.path.exists(base_path):
            with open(base_path, "r") as f:
                base_cfg = yaml.safe_load(f) or {}

        local_overrides_path = os.path.join(os.path.dirname(config_path), "config.yaml")
        local_cfg: Dict[str, Any] = {}
        if os.path.exists(local_overrides_path):
            with open(local_overrides_path, "r") as f:
                local_cfg = yaml.safe_load(f) or {}

        merged = _deep_merge(base_cfg, local_cfg)

        # Finally apply explicit config_path if it's not the local override file itself
        if os.path.exists(config_path) and os.path.abspath(config_path) != os.path.abspath(local_overrides_path):
            with open(config_path, "r") as f:
                explicit_cfg = yaml.safe_load(f) or {}
            merged = _deep_merge(merged, explicit_cfg)

        return merged
    except Exception as e:
        logging.error(f"Failed to load configuration: {e}")
        sys.exit(1)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_unit_interval(section: Dict[str, Any], key: str, prefix: str) -> Optional[str]:
    if key in section:
        value = section[key]
        if not _is_number(value) or not (0 <= value <= 1):
            return f"{prefix}.{key} must be a number between 0 and 1"
    return None


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration file structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    # Required top-level sections
    required_sections = ['detector', 'recognizer', 'matching', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Validate detector settings
    detector = config.get('detector') or {}
    if not isinstance(detector.get('model_path'), str) or not detector.get('model_path'):
        return False, "detector.model_path must be a non-empty string"
    if 'input_size' in detector:
        if not isinstance(detector['input_size'], int) or detector['input_size'] <= 0:
            return False, "detector.input_size must be a positive integer"
    for key in ('conf_threshold', 'iou_threshold'):
        error = _check_unit_interval(detector, key, 'detector')
        if error:
            return False, error
    if 'class_names' in detector:
        names = detector['class_names']
        if not isinstance(names, list) or not names or not all(isinstance(n, str) for n in names):
            return False, "detector.class_names must be a non-empty list of strings"

    # Validate recognizer settings
    recognizer = config.get('recognizer') or {}
    if not isinstance(recognizer.get('model_path'), str) or not recognizer.get('model_path'):
        return False, "recognizer.model_path must be a non-empty string"
    for key in ('input_size', 'embedding_size'):
        if key in recognizer:
            if not isinstance(recognizer[key], int) or recognizer[key] <= 0:
                return False, f"recognizer.{key} must be a positive integer"
    if 'crop_padding' in recognizer:
        if not isinstance(recognizer['crop_padding'], int) or recognizer['crop_padding'] < 0:
            return False, "recognizer.crop_padding must be a non-negative integer"
    for key in ('mean', 'std'):
        if key in recognizer:
            values = recognizer[key]
            if not isinstance(values, list) or len(values) != 3 or not all(_is_number(v) for v in values):
                return False, f"recognizer.{key} must be a list of 3 numbers"
    if 'std' in recognizer and any(v == 0 for v in recognizer['std']):
        return False, "recognizer.std values must be non-zero"

    # Validate matching settings
    matching = config.get('matching') or {}
    if not isinstance(matching.get('reference_path'), str) or not matching.get('reference_path'):
        return False, "matching.reference_path must be a non-empty string"
    error = _check_unit_interval(matching, 'threshold', 'matching')
    if error:
        return False, error
    if matching.get('early_stop_threshold') is not None:
        error = _check_unit_interval(matching, 'early_stop_threshold', 'matching')
        if error:
            return False, error

    # Optional runtime settings
    runtime = config.get('runtime') or {}
    if 'accelerated_providers' in runtime:
        providers = runtime['accelerated_providers']
        if not isinstance(providers, list) or not all(isinstance(p, str) for p in providers):
            return False, "runtime.accelerated_providers must be a list of strings"
    if 'intra_op_threads' in runtime:
        if not isinstance(runtime['intra_op_threads'], int) or runtime['intra_op_threads'] < 0:
            return False, "runtime.intra_op_threads must be a non-negative integer"

    # Optional camera settings
    camera = config.get('camera') or {}
    if 'device_id' in camera:
        if not isinstance(camera['device_id'], (int, str)):
            return False, "camera.device_id must be an integer (index) or string (path)"
        if isinstance(camera['device_id'], int) and camera['device_id'] < 0:
            return False, "camera.device_id integer must be non-negative"
    if 'resolution' in camera:
        if not isinstance(camera['resolution'], list) or len(camera['resolution']) != 2:
            return False, "camera.resolution must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in camera['resolution']):
            return False, "camera.resolution values must be positive integers"
    if 'rotation' in camera and camera['rotation'] not in (0, 90, 180, 270):
        return False, "camera.rotation must be one of: 0, 90, 180, 270"

    # Optional engine settings
    engine = config.get('engine') or {}
    if 'max_consecutive_failures' in engine:
        mcf = engine['max_consecutive_failures']
        if not isinstance(mcf, int) or mcf <= 0:
            return False, "engine.max_consecutive_failures must be a positive integer"

    # Validate log settings
    if config['log_level'] not in VALID_LOG_LEVELS:
        return False, f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}"

    return True, None


def _parse_source(value: str) -> Union[int, str]:
    """Camera index if numeric, otherwise a path."""
    return int(value) if value.isdigit() else value


def format_frame_result(result: FrameResult, name: str = "") -> str:
    """Human-readable summary of one frame's results."""
    header = f"{name or f'frame {result.frame_index}'}: {result.status.value}, {result.count} card(s)"
    if not result.recognition_enabled:
        header += " (recognition disabled)"
    lines = [header]
    for r in result.results:
        x1, y1, x2, y2 = r.bbox.as_int_tuple()
        lines.append(f"  {format_label(r)} at ({x1}, {y1}, {x2}, {y2})")
    if result.error:
        lines.append(f"  error: {result.error}")
    return "\n".join(lines)


def _json_callback(result: FrameResult) -> None:
    print(json.dumps(result.to_dict()), flush=True)


def _log_callback(result: FrameResult) -> None:
    if result.count:
        logging.info(format_frame_result(result))


def run_images(
    ctx: RuntimeContext,
    paths: List[str],
    output_dir: Optional[str] = None,
    as_json: bool = False,
    rotation: int = 0,
) -> int:
    """
    Run the pipeline once per image and print results.

    Returns the number of images that could not be processed.
    """
    failures = 0
    if output_dir and not os.path.exists(output_dir):
        os.makedirs(output_dir)

    source = ImageFileSource(ImageFileSourceConfig(source_id="images", paths=paths, rotation=rotation))
    expected = len(source.files)
    if not expected:
        logging.error(f"No images found in {paths}")
        return 1
    processed = 0
    with source:
        for frame_data in source:
            processed += 1
            path = frame_data.source
            result = ctx.pipeline.process(
                frame_data.frame,
                frame_index=frame_data.frame_index,
                rotation=frame_data.rotation,
            )
            if result.error:
                failures += 1

            if as_json:
                print(json.dumps({"image": path, **result.to_dict()}))
            else:
                print(format_frame_result(result, name=path))

            if output_dir:
                annotated = draw_results(frame_data.frame, result)
                out_path = os.path.join(output_dir, os.path.basename(path))
                cv2.imwrite(out_path, cv2.cvtColor(annotated, cv2.COLOR_RGB2BGR))
                logging.info(f"Annotated image saved: {out_path}")

    # Unreadable files are skipped by the source
    return failures + (expected - processed)


def main():
    """Main application function."""
    # Parse command-line arguments
    parser = argparse.ArgumentParser(description='Card Recognition System')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--image', type=str, nargs='+',
                        help='Image file(s) or directories to process once')
    parser.add_argument('--source', type=str,
                        help='Camera index or video file (overrides camera.device_id)')
    parser.add_argument('--output', type=str,
                        help='Directory for annotated output images')
    parser.add_argument('--display', action='store_true',
                        help='Enable visual display')
    parser.add_argument('--json', action='store_true',
                        help='Print results as JSON lines')
    args = parser.parse_args()

    # Load configuration
    config = load_config(args.config)

    # Validate configuration
    is_valid, error_msg = validate_config(config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        sys.exit(1)

    # Setup logging
    setup_logging(config['log_path'], config['log_level'])

    logging.info("Starting Card Recognition System")

    typed_config = Config.from_dict(config)
    ctx = build_runtime(typed_config)
    status = ctx.initialize()
    print(status.status_text())

    try:
        if args.image:
            failures = run_images(
                ctx,
                args.image,
                output_dir=args.output,
                as_json=args.json,
                rotation=typed_config.camera.rotation,
            )
            if failures:
                sys.exit(1)
            return

        if not status.detection_ready:
            logging.error("Detector failed to initialize, cannot process frames")
            sys.exit(1)

        camera_cfg = dict(config.get('camera') or {})
        if args.source is not None:
            camera_cfg['device_id'] = _parse_source(args.source)
        source = OpenCVSource(OpenCVSourceConfig.from_camera_config(camera_cfg, source_id="main-camera"))

        dispatcher = FrameDispatcher(ctx.pipeline)
        dispatcher.add_callback(_json_callback if args.json else _log_callback)

        engine = create_engine_from_config(config, dispatcher, source=source, display=args.display)
        try:
            engine.run()
        finally:
            dispatcher.shutdown()
    finally:
        ctx.close()


if __name__ == "__main__":
    main()
