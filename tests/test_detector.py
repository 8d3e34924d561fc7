import cv2
import numpy as np
import pytest

from gaugecam.calib import (
    TEMPLATE_COUNT,
    DetectorConfig,
    ImageSize,
    InsufficientMatchesError,
    MatchCandidate,
    Rect,
    Side,
    TargetDetector,
    ValidationError,
    build_bowtie_bank,
)

IMAGE_SIZE = ImageSize(width=1000, height=800)
TEMPLATE_DIM = 56


@pytest.fixture
def detector():
    det = TargetDetector(DetectorConfig())
    det.init_bowtie_template(TEMPLATE_DIM, IMAGE_SIZE)
    return det


# ----------------------------------------------------------------------
# Template bank
# ----------------------------------------------------------------------
def test_bank_has_one_template_per_degree():
    bank = build_bowtie_bank(56)
    assert len(bank) == TEMPLATE_COUNT == 11
    assert bank.center_index == 5
    assert [bank.angle(i) for i in range(len(bank))] == [float(a) for a in range(-5, 6)]
    for _, template in bank:
        assert template.shape == (56, 56)
        assert template.dtype == np.uint8


def test_bank_rounds_dimension_up_to_even():
    bank = build_bowtie_bank(55)
    assert bank.template_dim == 56


def test_unrotated_bowtie_layout():
    template = build_bowtie_bank(56)[5]
    # dark wedges left and right of center, light above and below
    assert template[28, 2] == 32
    assert template[28, 53] == 32
    assert template[2, 28] == 224
    assert template[53, 28] == 224


def test_rotated_templates_differ_from_center():
    bank = build_bowtie_bank(56)
    center = bank[bank.center_index].astype(int)
    assert np.abs(bank[0].astype(int) - center).sum() > 0
    assert np.abs(bank[10].astype(int) - center).sum() > 0


@pytest.mark.parametrize("dim", [19, 1001])
def test_init_rejects_bad_dimension(dim):
    with pytest.raises(ValidationError):
        TargetDetector().init_bowtie_template(dim, IMAGE_SIZE)


def test_init_rejects_image_smaller_than_template():
    with pytest.raises(ValidationError):
        TargetDetector().init_bowtie_template(56, ImageSize(40, 40))


def test_init_allocates_score_buffers(detector):
    assert detector.is_ready
    assert detector._match_space.shape == (800 - 56 + 1, 1000 - 56 + 1)
    assert detector._match_space_small.shape == (29, 29)
    assert detector._match_space.dtype == np.float32


def test_clone_shares_bank_not_buffers(detector):
    other = detector.clone()
    assert other.bank is detector.bank
    assert other._match_space is not detector._match_space
    assert other._match_space.shape == detector._match_space.shape


# ----------------------------------------------------------------------
# Matching
# ----------------------------------------------------------------------
def test_uninitialized_detector_fails(target_image):
    with pytest.raises(ValidationError):
        TargetDetector().find_targets(target_image)
    with pytest.raises(ValidationError):
        TargetDetector().find_move_targets(target_image)


@pytest.mark.parametrize(
    "index, min_score, num_to_find",
    [(-1, 0.5, 1), (11, 0.5, 1), (5, 0.01, 1), (5, 1.5, 1), (5, 0.5, 0), (5, 0.5, 1001)],
)
def test_match_template_validates_arguments(detector, target_image, index, min_score, num_to_find):
    with pytest.raises(ValidationError):
        detector.match_template(index, target_image, min_score, num_to_find)


def test_match_template_reports_template_centers(detector, target_image, target_centers):
    found = detector.match_template(5, target_image, 0.6, 16)
    assert len(found) == 8
    for candidate in found:
        assert candidate.score > 0.9
        distances = [np.hypot(candidate.point[0] - x, candidate.point[1] - y) for x, y in target_centers]
        assert min(distances) < 0.5


def test_match_template_on_blank_image(detector):
    blank = np.full((IMAGE_SIZE.height, IMAGE_SIZE.width), 128, dtype=np.uint8)
    with pytest.raises(InsufficientMatchesError):
        detector.match_template(5, blank, 0.6, 4)


def test_match_refine_moves_to_true_center(detector, target_image):
    start = MatchCandidate(score=0.3, point=(303.0, 148.0))
    refined = detector.match_refine(5, target_image, 0.5, start)
    assert refined.score > 0.9
    assert refined.point == pytest.approx((300.0, 150.0), abs=0.5)


def test_match_refine_keeps_better_candidate(detector, target_image):
    start = MatchCandidate(score=1.0, point=(303.0, 148.0))
    assert detector.match_refine(0, target_image, 0.5, start) is start


def test_match_refine_recovers_half_pixel_center(detector, target_image):
    shift = np.float32([[1, 0, 0.5], [0, 1, 0.5]])
    shifted = cv2.warpAffine(
        target_image,
        shift,
        (IMAGE_SIZE.width, IMAGE_SIZE.height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_REFLECT,
    )
    start = MatchCandidate(score=0.3, point=(303.0, 148.0))
    refined = detector.match_refine(5, shifted, 0.5, start)
    assert refined.score > 0.9
    assert refined.point == pytest.approx((300.5, 150.5), abs=0.3)


def test_subpixel_centroid(detector):
    score_map = np.zeros((9, 9), dtype=np.float32)
    score_map[4, 4] = 1.0
    score_map[4, 5] = 1.0
    assert detector.subpixel_point_refine(score_map, (4, 4)) == pytest.approx((4.5, 4.0))

    score_map[:] = 0.0
    score_map[3:6, 3:6] = 0.5
    assert detector.subpixel_point_refine(score_map, (4, 4)) == pytest.approx((4.0, 4.0))

    # shallow peak on a high floor
    score_map[:] = 0.8
    score_map[4, 4] = 1.0
    score_map[4, 5] = 0.9
    assert detector.subpixel_point_refine(score_map, (4, 4)) == pytest.approx((4.0 + 1.0 / 3.0, 4.0), abs=1e-5)


def test_subpixel_rejects_border_and_format(detector):
    score_map = np.ones((9, 9), dtype=np.float32)
    with pytest.raises(ValidationError):
        detector.subpixel_point_refine(score_map, (0, 4))
    with pytest.raises(ValidationError):
        detector.subpixel_point_refine(score_map, (4, 8))
    with pytest.raises(ValidationError):
        detector.subpixel_point_refine(score_map.astype(np.float64), (4, 4))


# ----------------------------------------------------------------------
# Grid search
# ----------------------------------------------------------------------
def test_find_targets_synthetic_grid(detector, target_image, target_centers):
    grid = detector.find_targets(target_image, 0.6)

    assert len(grid) == 4
    assert all(len(row) == 2 for row in grid)
    found = [c.point for row in grid for c in row]
    for point, expected in zip(found, target_centers):
        assert point == pytest.approx(expected, abs=0.5)


def test_find_targets_accepts_color_image(detector, target_image, target_centers):
    color = np.dstack([target_image] * 3)
    grid = detector.find_targets(color)
    assert grid[3][1].point == pytest.approx(target_centers[-1], abs=0.5)


def test_find_targets_writes_debug_image(detector, target_image, tmp_path):
    out = tmp_path / "debug" / "found.png"
    detector.find_targets(target_image, debug_output_path=out)
    assert out.exists()


@pytest.mark.parametrize("min_score", [0.0, 1.2])
def test_find_targets_rejects_score(detector, target_image, min_score):
    with pytest.raises(ValidationError):
        detector.find_targets(target_image, min_score)


def test_find_targets_rejects_empty_image(detector):
    with pytest.raises(ValidationError):
        detector.find_targets(np.zeros((0, 0), dtype=np.uint8))


def test_find_targets_too_few(detector, make_target_image):
    image = make_target_image(centers=[(300, 150), (700, 150), (300, 300)])
    with pytest.raises(InsufficientMatchesError):
        detector.find_targets(image)


def test_find_targets_rotated_bowties(detector, make_target_image, target_centers):
    # left column turned by +3 degrees, right column by -3 degrees
    image = make_target_image(bank_index=[8, 2] * 4)
    coarse = detector.match_template(5, image, 0.5, 16)
    assert len(coarse) == 8

    grid = detector.find_targets(image)
    found = [c for row in grid for c in row]
    for candidate, expected in zip(found, target_centers):
        assert candidate.point == pytest.approx(expected, abs=0.5)
    assert min(c.score for c in found) > max(c.score for c in coarse)
    assert min(c.score for c in found) > 0.95


def test_sort_points_orders_shuffled_candidates(detector, target_centers):
    rng = np.random.default_rng(3)
    candidates = [MatchCandidate(score=0.9, point=p) for p in target_centers]
    # a weaker extra candidate that must be dropped
    candidates.append(MatchCandidate(score=0.2, point=(500.0, 10.0)))
    order = rng.permutation(len(candidates))
    detector._candidates = [candidates[i] for i in order]

    grid = detector.sort_points(IMAGE_SIZE)
    assert [c.point for row in grid for c in row] == target_centers


def test_sort_points_move_rois(detector, target_image):
    detector.find_targets(target_image)
    rois = detector.get_move_target_rois()
    # top row span is 400 px, row pitch 150 px
    assert rois[Side.LEFT] == Rect(225, 75, 150, 150)
    assert rois[Side.RIGHT] == Rect(625, 75, 150, 150)
    for rect in rois.values():
        assert not rect.contains((300.0, 300.0))
        assert not rect.contains((700.0, 300.0))


def test_sort_points_requires_enough_candidates(detector):
    detector._candidates = [MatchCandidate(0.9, (10.0, 10.0))]
    with pytest.raises(InsufficientMatchesError):
        detector.sort_points(IMAGE_SIZE)


def test_get_found_points(detector, target_image, target_centers):
    with pytest.raises(InsufficientMatchesError):
        detector.get_found_points()
    detector.find_targets(target_image)
    rows = detector.get_found_points()
    assert len(rows) == 4
    assert rows[0][0] == pytest.approx(target_centers[0], abs=0.5)


# ----------------------------------------------------------------------
# Movement
# ----------------------------------------------------------------------
def _set_rois(detector, image, left, right):
    detector.set_move_target_roi(image, left, Side.LEFT)
    detector.set_move_target_roi(image, right, Side.RIGHT)


def test_find_move_targets_after_shift(detector, make_target_image):
    image = make_target_image(offset=(6, -4))
    _set_rois(detector, image, Rect(244, 94, 112, 112), Rect(644, 94, 112, 112))

    targets = detector.find_move_targets(image)
    assert targets.left == pytest.approx((306.0, 146.0), abs=0.5)
    assert targets.right == pytest.approx((706.0, 146.0), abs=0.5)


def test_find_move_targets_uses_sorted_windows(detector, target_image, make_target_image):
    detector.find_targets(target_image)
    targets = detector.find_move_targets(make_target_image(offset=(6, -4)))
    assert targets.left == pytest.approx((306.0, 146.0), abs=0.5)
    assert targets.right == pytest.approx((706.0, 146.0), abs=0.5)


def test_find_move_targets_needs_exactly_two(detector, make_target_image):
    halves = (Rect(0, 0, 500, 800), Rect(500, 0, 500, 800))

    empty = make_target_image(centers=[])
    _set_rois(detector, empty, *halves)
    with pytest.raises(InsufficientMatchesError):
        detector.find_move_targets(empty)

    single = make_target_image(centers=[(300, 150)])
    with pytest.raises(InsufficientMatchesError):
        detector.find_move_targets(single)


def test_set_move_target_roi_outside_image(detector, target_image):
    with pytest.raises(ValidationError):
        detector.set_move_target_roi(target_image, Rect(950, 10, 100, 100), Side.RIGHT)


def test_draw_move_rois(detector, target_image):
    _set_rois(detector, target_image, Rect(244, 94, 112, 112), Rect(644, 94, 112, 112))
    overlay = np.dstack([target_image] * 3)
    detector.draw_move_rois(overlay)
    assert tuple(overlay[94, 300]) == (0, 0, 255)

    with pytest.raises(ValidationError):
        detector.draw_move_rois(overlay.astype(np.float32))


def test_draw_move_rois_requires_rois_inside(target_image):
    det = TargetDetector()
    det.init_bowtie_template(TEMPLATE_DIM, IMAGE_SIZE)
    with pytest.raises(ValidationError):
        det.draw_move_rois(np.dstack([target_image] * 3))
