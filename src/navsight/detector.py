import logging
from typing import List, Optional, Sequence

import cv2
import numpy as np
import onnxruntime as ort

logger = logging.getLogger(__name__)


def load_class_names(labels_path: str) -> List[str]:
    with open(labels_path, "r") as f:
        return [line.strip() for line in f.read().strip().split("\n")]


class ObjectDetector:
    """
    YOLOv5 ONNX detector. `detect()` returns dicts with "label", "confidence"
    and "box" = (x, y, w, h) in source-frame pixels.
    """

    INPUT_SIZE = 640

    def __init__(self, model_path: Optional[str], class_names: Sequence[str],
                 confidence_threshold=0.4, iou_threshold=0.45, session=None):
        self.session = session if session is not None else ort.InferenceSession(model_path, providers=["CPUExecutionProvider"])
        self.input_name = self.session.get_inputs()[0].name
        self.output_name = self.session.get_outputs()[0].name
        self.class_names = list(class_names)
        self.confidence_threshold = confidence_threshold
        self.iou_threshold = iou_threshold

    def preprocess(self, frame):
        image = cv2.resize(frame, (self.INPUT_SIZE, self.INPUT_SIZE))
        image_rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        input_tensor = image_rgb.transpose(2, 0, 1).astype(np.float32) / 255.0
        input_tensor = np.expand_dims(input_tensor, axis=0)
        return input_tensor, image.shape[:2], frame.shape[:2]

    def detect(self, frame):
        input_tensor, resized_shape, original_shape = self.preprocess(frame)
        outputs = self.session.run([self.output_name], {self.input_name: input_tensor})
        return self.postprocess(outputs, original_shape, resized_shape)

    def _label(self, class_id: int) -> str:
        if 0 <= class_id < len(self.class_names):
            return self.class_names[class_id]
        return "object"

    def postprocess(self, outputs, original_shape, resized_shape):
        detections = []
        boxes = []
        confidences = []
        class_ids = []

        output = outputs[0]
        rows = output.shape[1]

        orig_h, orig_w = original_shape
        resized_h, resized_w = resized_shape

        scale_x = orig_w / resized_w
        scale_y = orig_h / resized_h

        for i in range(rows):
            row = output[0][i]
            objectness = row[4]
            if objectness < self.confidence_threshold:
                continue

            class_scores = row[5:]
            class_id = int(np.argmax(class_scores))
            score = class_scores[class_id]
            if score < self.confidence_threshold:
                continue

            cx, cy, w, h = row[0:4]
            x = int((cx - w / 2) * scale_x)
            y = int((cy - h / 2) * scale_y)
            w_box = int(w * scale_x)
            h_box = int(h * scale_y)

            boxes.append([x, y, w_box, h_box])
            confidences.append(float(score))
            class_ids.append(class_id)

        if not boxes:
            return detections

        # Apply NMS to remove overlapping boxes
        indices = cv2.dnn.NMSBoxes(boxes, confidences, self.confidence_threshold, self.iou_threshold)

        for i in np.array(indices).flatten():
            x, y, w_box, h_box = boxes[int(i)]
            detections.append({
                "label": self._label(class_ids[int(i)]),
                "confidence": confidences[int(i)],
                "box": (x, y, w_box, h_box),
            })

        return detections
