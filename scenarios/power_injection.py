import logging

import numpy as np

import poroflow


def main():
    problem = poroflow.PowerInjectionProblem(
        length=100.0,
        cells=100,
        porosity=0.8,
        diffusivity=1.0,
        exponent=4.0,
        injection_rate=1e-2,
    )
    config = poroflow.Config(
        initial_step_size=poroflow.Time(seconds=10),
        end_time=poroflow.Time(hours=1),
        min_step_size=poroflow.Time(milliseconds=10),
        max_step_size=poroflow.Time(minutes=5),
        max_time_step_divisions=10,
        episode_length=poroflow.Time(minutes=20),
        output_interval=5,
    )
    states = list(poroflow.run(problem=problem, config=config))
    final = states[-1]

    # Volume balance: everything injected is stored in the column or left through the right boundary
    stored = problem.stored_volume(final.solution)
    injected = problem.total_injected(final.time)
    print(f"Injected volume: {injected:.4f} m, stored volume: {stored:.4f} m")
    print(f"Front position: {problem.cell_centers()[np.argmax(final.solution < 1e-3)]:.2f} m")
    return states


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    np.set_printoptions(threshold=np.inf)  # type: ignore
    main()
