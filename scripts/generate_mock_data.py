import os

from allocation.dataset import generate_registry_frames, write_frames


def generate_mock_registry(num_hospitals=12, num_recipients=200, num_donors=120, output_dir="sampledata", seed=None):
    """
    Generates a mock transplant registry (hospitals, waiting recipients, donors) as CSV.
    Hospitals are spread over a few cities in the same regions so that local, regional,
    national and international matches all show up in the rankings.
    """
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    directory = os.path.join(base_dir, output_dir)

    frames = generate_registry_frames(
        num_hospitals=num_hospitals,
        num_recipients=num_recipients,
        num_donors=num_donors,
        seed=seed,
    )
    paths = write_frames(frames, directory)

    for table, path in paths.items():
        print(f"Generated {len(frames[table])} {table} -> '{path}'")

    # Quick preview of demand vs supply per organ
    recipients = frames["recipients"]
    donors = frames["donors"]
    offered = donors["organs"].str.split(";").explode().value_counts()

    print("\nOrgan demand vs supply:")
    for organ, demand in recipients["organ_needed"].value_counts().items():
        print(f"  {organ}: {demand} waiting / {int(offered.get(organ, 0))} offered")


if __name__ == "__main__":
    generate_mock_registry(seed=42)
