#!/usr/bin/env python3
"""
Quick Start Examples
====================

Simple examples to get started with running-assessment.

Usage:
    python examples/quick_start.py
"""

# ============================================================================
# 1. Gait Event Detection
# ============================================================================

def make_synthetic_run(n_steps: int = 8, fps: float = 30.0):
    """Landmark buffer of a runner moving left to right (in real use, from the pose provider)."""
    import numpy as np
    from running_assessment.pose.landmarks import SIDE_JOINTS, LandmarkSequence

    period, stance, lead = 15, 7, 10
    n_frames = lead + n_steps * period + 10
    data = np.zeros((n_frames, 33, 4), dtype=np.float32)
    data[:, :, 3] = 0.95

    progress = np.linspace(0.1, 0.9, n_frames)
    for side, joints in SIDE_JOINTS.items():
        offset = 0 if side == "left" else period
        foot_y = np.full(n_frames, 0.82)
        for start in range(lead + offset, n_frames, 2 * period):
            foot_y[start:start + stance + 1] = 0.9

        data[:, joints["shoulder"], 0] = progress
        data[:, joints["shoulder"], 1] = 0.3
        data[:, joints["hip"], 0] = progress
        data[:, joints["hip"], 1] = 0.5
        data[:, joints["knee"], 0] = progress
        data[:, joints["knee"], 1] = 0.7
        data[:, joints["ankle"], 0] = progress
        data[:, joints["ankle"], 1] = foot_y
        data[:, joints["toe"], 0] = progress + 0.03
        data[:, joints["toe"], 1] = foot_y

    return LandmarkSequence.from_array(data, fps)


def example_gait_detection():
    """Detect contacts/toe-offs and derive step metrics."""
    from running_assessment.analysis import detect_gait_events, summarize_steps

    seq = make_synthetic_run()
    result = detect_gait_events(seq)

    print(f"Frames: {seq.n_frames} ({seq.duration:.1f}s)")
    print(f"Contacts: {len(result.contacts)}, toe-offs: {len(result.toe_offs)}")
    print(f"Detection rate: {result.detection_rate * 100:.0f}%")

    summary = summarize_steps(result.steps)
    print(f"Contact time: {summary.contact_time_mean:.3f}s")
    if summary.cadence_mean is not None:
        print(f"Cadence: {summary.cadence_mean:.2f} steps/s")

    return seq, result


# ============================================================================
# 2. Track Distances
# ============================================================================

def example_track_distances(seq, result):
    """Map contact positions to track distance with two known markers."""
    from running_assessment.analysis import apply_distances, contact_frames
    from running_assessment.pose import LinearDistanceMapping, contact_distances

    width, height = 1920, 1080
    # Pixel x of the 0 m and 20 m cones
    mapping = LinearDistanceMapping([192, 1728], [0.0, 20.0])

    frames = contact_frames(result.steps)
    distances = dict(zip(frames, contact_distances(seq, frames, mapping, width, height)))
    steps = apply_distances(result.steps, distances)

    for step in steps[:3]:
        if step.stride is not None:
            print(f"Step {step.index}: stride {step.stride:.2f} m, speed {step.speed:.2f} m/s")

    return steps


# ============================================================================
# 3. H-FVP Profile
# ============================================================================

def example_hfvp():
    """Horizontal force-velocity profile from 5 m split times."""
    from running_assessment.analysis import HFVPInput, compute_hfvp

    inp = HFVPInput(
        marker_distances=[0, 5, 10, 15, 20],
        cumulative_times=[0, 1.2, 2.1, 2.9, 3.6],
        mass_kg=70,
    )
    profile = compute_hfvp(inp)

    print(f"F0: {profile.f0:.1f} N ({profile.f0_rel:.2f} N/kg)")
    print(f"V0: {profile.v0:.2f} m/s")
    print(f"Pmax: {profile.pmax:.0f} W")
    print(f"F-v R²: {profile.fv_r2:.3f}, position R²: {profile.pos_r2:.3f}")
    print(f"Quality: {profile.quality_grade.value}")
    for warning in profile.warnings:
        print(f"  ! {warning}")

    return profile


# ============================================================================
# 4. Certification Scoring and Routing
# ============================================================================

def example_scoring(seq, steps):
    """Score a grade 5 attempt and route it to its next status."""
    from running_assessment.certification import (
        CertificationScorer,
        ContactTimeMeasurement,
        QualityMetrics,
        ScoringInput,
        StrideMeasurement,
        determine_judgment_mode,
        load_grade_rules,
        next_action,
        route_result,
    )
    from running_assessment.pose import measure_angles

    contacts = [s.contact_frame for s in steps]
    angles = measure_angles(seq, contacts)
    stride = StrideMeasurement.from_values(
        [s.stride for s in steps],
        [s.cadence for s in steps],
        height_m=1.70,
    )
    contact_time = ContactTimeMeasurement.from_values(
        [s.contact_time for s in steps],
        [s.flight_time for s in steps],
    )
    quality = QualityMetrics.from_pose_stats(seq.quality_metrics(), measurement_points=len(steps))

    inp = ScoringInput(
        grade=5,
        angles=angles,
        stride=stride,
        contact_time=contact_time,
        quality=quality,
    )
    result = CertificationScorer(load_grade_rules()).score(inp)

    print(f"Grade {result.grade.label}: {result.total_score:.1f} / {result.pass_threshold:.0f}")
    print(f"Passed: {result.is_passed}, data quality: {result.quality_grade.value}")

    mode = determine_judgment_mode(result.grade)
    status = route_result(result, mode)
    action = next_action(mode, status)
    print(f"Status: {status.value} -> {action.label}")


# ============================================================================
# Run Examples
# ============================================================================

if __name__ == "__main__":
    import logging

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 50)
    print("1. Gait Event Detection")
    print("=" * 50)
    seq, detection = example_gait_detection()

    print("\n" + "=" * 50)
    print("2. Track Distances")
    print("=" * 50)
    steps = example_track_distances(seq, detection)

    print("\n" + "=" * 50)
    print("3. H-FVP Profile")
    print("=" * 50)
    example_hfvp()

    print("\n" + "=" * 50)
    print("4. Certification Scoring")
    print("=" * 50)
    example_scoring(seq, steps)
