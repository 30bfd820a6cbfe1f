"""
OpenCV matching primitives: ORB feature matching and template correlation.

Both return absolute regions on the screen image sorted by match quality.
Dimension filtering and coalescing happen in ``grounding.algorithmic``.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

import cv2
import numpy as np
from PIL import Image
from sklearn.cluster import DBSCAN

from screen_locator.common.cv_utils import pil_to_bgr, pil_to_gray
from screen_locator.common.geometry import Region

logger = logging.getLogger(__name__)

MIN_GOOD_FEATURE_MATCHES = 10
LOWE_RATIO = 0.75
KNN_MATCHES_PER_QUERY = 2
MIN_CLUSTER_POPULATION = 5
MIN_POINTS_FOR_HOMOGRAPHY = 6
MAX_REPROJECTION_ERROR = 5.0


def _create_orb():
    return cv2.ORB_create(
        nfeatures=150000,
        scaleFactor=1.02,
        nlevels=12,
        edgeThreshold=8,
        firstLevel=0,
        WTA_K=2,
        scoreType=cv2.ORB_HARRIS_SCORE,
        patchSize=31,
        fastThreshold=6,
    )


class OpenCvMatcher:
    """Reference-image search on a screen using OpenCV."""

    def __init__(self, *, max_matches: int = 6):
        self.max_matches = int(max(1, max_matches))

    def feature_match(self, reference: Image.Image, screen: Image.Image, threshold: float) -> List[Region]:
        """
        Locate the reference by ORB keypoint matching.

        Good matches (Lowe ratio test) are grouped spatially with DBSCAN; each
        group is mapped back through a RANSAC homography and the projected
        reference corners give the region. A group is kept when the share of
        homography inliers reaches ``threshold``.
        """
        ref_gray = pil_to_gray(reference)
        screen_gray = pil_to_gray(screen)
        orb = _create_orb()

        kp_ref, des_ref = orb.detectAndCompute(ref_gray, None)
        if des_ref is None or len(kp_ref) == 0:
            logger.warning("No ORB descriptors found in the reference image")
            return []
        kp_screen, des_screen = orb.detectAndCompute(screen_gray, None)
        if des_screen is None or len(kp_screen) == 0:
            logger.warning("No ORB descriptors found in the screen image")
            return []

        good = self._good_matches(des_ref, des_screen)
        if len(good) < MIN_GOOD_FEATURE_MATCHES:
            logger.debug("Only %d good feature matches, need %d", len(good), MIN_GOOD_FEATURE_MATCHES)
            return []

        ref_h, ref_w = ref_gray.shape[:2]
        points = np.array([kp_screen[m.trainIdx].pt for m in good], dtype=np.float32)
        eps = float(max(ref_w, ref_h))
        labels = DBSCAN(eps=eps, min_samples=MIN_CLUSTER_POPULATION).fit(points).labels_

        scored: List[Tuple[float, Region]] = []
        for lbl in sorted(set(int(v) for v in labels)):
            if lbl == -1:
                continue
            idx = np.where(labels == lbl)[0]
            found = self._project_cluster(
                [good[i] for i in idx], kp_ref, kp_screen, ref_w=ref_w, ref_h=ref_h
            )
            if found is None:
                continue
            ratio, region = found
            if ratio >= float(threshold):
                scored.append((ratio, region))

        scored.sort(key=lambda t: (-t[0], t[1].as_tuple()))
        regions = [r for _, r in scored[: self.max_matches]]
        logger.debug("ORB matching found %d regions", len(regions))
        return regions

    def correlation_match(self, reference: Image.Image, screen: Image.Image, threshold: float) -> List[Region]:
        """
        Locate the reference by normalized cross-correlation.

        Takes the best peak of the TM_CCOEFF_NORMED map while it stays above
        ``threshold``, blanking a template-sized neighbourhood around each
        accepted peak so the next one is a distinct location.
        """
        ref = pil_to_bgr(reference)
        scr = pil_to_bgr(screen)
        th, tw = ref.shape[:2]
        sh, sw = scr.shape[:2]
        if th > sh or tw > sw:
            return []

        result = cv2.matchTemplate(scr, ref, cv2.TM_CCOEFF_NORMED)
        result = np.nan_to_num(result, nan=-1.0)
        regions: List[Region] = []
        while len(regions) < self.max_matches:
            _, max_val, _, max_loc = cv2.minMaxLoc(result)
            if float(max_val) < float(threshold):
                break
            x, y = int(max_loc[0]), int(max_loc[1])
            regions.append(Region.from_xywh(x, y, tw, th))
            x0 = max(0, x - tw // 2)
            y0 = max(0, y - th // 2)
            result[y0 : y + th // 2 + 1, x0 : x + tw // 2 + 1] = -1.0
        logger.debug("Template matching found %d regions", len(regions))
        return regions

    @staticmethod
    def _good_matches(des_ref: np.ndarray, des_screen: np.ndarray) -> list:
        matcher = cv2.BFMatcher(cv2.NORM_HAMMING)
        knn = matcher.knnMatch(des_ref, des_screen, k=KNN_MATCHES_PER_QUERY)
        good = []
        for pair in knn:
            if len(pair) > 1 and pair[0].distance < LOWE_RATIO * pair[1].distance:
                good.append(pair[0])
        return good

    @staticmethod
    def _project_cluster(matches, kp_ref, kp_screen, *, ref_w: int, ref_h: int):
        if len(matches) < MIN_POINTS_FOR_HOMOGRAPHY:
            logger.debug("Cluster of %d points is too small for a homography", len(matches))
            return None
        src = np.float32([kp_ref[m.queryIdx].pt for m in matches]).reshape(-1, 1, 2)
        dst = np.float32([kp_screen[m.trainIdx].pt for m in matches]).reshape(-1, 1, 2)
        homography, mask = cv2.findHomography(src, dst, cv2.RANSAC, MAX_REPROJECTION_ERROR)
        if homography is None or homography.shape != (3, 3) or mask is None:
            return None
        corners = np.float32([[0, 0], [ref_w, 0], [ref_w, ref_h], [0, ref_h]]).reshape(-1, 1, 2)
        projected = cv2.perspectiveTransform(corners, homography)
        x, y, w, h = cv2.boundingRect(projected.astype(np.int32))
        if w <= 0 or h <= 0:
            return None
        inlier_ratio = float(np.count_nonzero(mask)) / float(len(matches))
        return inlier_ratio, Region.from_xywh(x, y, w, h)
