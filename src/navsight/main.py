import argparse
import logging
import os

from .app import NavigationApp
from .camera import CameraStream
from .config_loader import CONFIG_PATH, load_config
from .detector import ObjectDetector, load_class_names
from .timers import TimerLoop
from .tts import Pyttsx3Speaker


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Spoken obstacle announcements from a camera feed.")
    parser.add_argument("--config", default=CONFIG_PATH, help="path to config.json")
    parser.add_argument("--model", default=os.path.join("models", "yolov5s.onnx"), help="YOLOv5 ONNX model")
    parser.add_argument("--labels", default=os.path.join("models", "coco.names"), help="class names, one per line")
    parser.add_argument("--camera", type=int, default=None, help="camera index (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="[%(levelname)s] %(message)s")

    config = load_config(args.config)
    if args.camera is not None:
        config["camera_index"] = args.camera

    loop = TimerLoop()
    detector = ObjectDetector(args.model, load_class_names(args.labels))
    speaker = Pyttsx3Speaker(loop)
    camera = CameraStream.from_config(config)

    app = NavigationApp(detector, speaker, camera, config=config, loop=loop, config_path=args.config)
    app.run()


if __name__ == "__main__":
    main()
