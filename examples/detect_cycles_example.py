import asyncio
import logging

from dotenv import load_dotenv

from circdep import BufferedNotificationSink, CircularDependencyValidator, ValidatorConfig
from circdep.memory import InMemoryModel, InMemorySession, Row

#set logging level to info
logging.basicConfig(level=logging.INFO)


def build_model() -> InMemoryModel:
    model = InMemoryModel()
    vehicle = model.add_block("Vehicle")
    chassis = model.add_block("Chassis")
    engine = model.add_block("Engine")
    controller = model.add_block("Controller")
    rollup = model.add_block("MassRollUp")

    model.add_part(vehicle, "chassis", chassis)
    model.add_part(vehicle, "engine", engine)
    model.add_part(engine, "ecu", controller)
    # The controller mistakenly embeds the whole engine
    model.add_part(controller, "plant", engine)
    model.add_part(chassis, "spare", chassis)
    model.add_part(rollup, "vehicle", vehicle)
    return model


async def main():
    load_dotenv()
    model = build_model()
    session = InMemorySession(project="Vehicle")
    sink = BufferedNotificationSink()
    validator = CircularDependencyValidator(model, session, sink, ValidatorConfig.from_env())

    await validator.session_opened()
    # Saving while idle starts a fresh run
    await validator.model_saved()

    for notification in sink.notifications:
        print(notification)

    snapshot = validator.get_invalid_paths()
    for line in snapshot.describe():
        print(line)

    result = validator.filters_invalid_elements(model.blocks())
    print(f"Blocks safe to transfer: {[b.name for b in result.remaining]}")

    vehicle = next(b for b in model.blocks() if b.name == "Vehicle")
    engine_part = next(e for e in model.all_elements() if e.name == "engine")
    tree = Row.for_element(vehicle, Row.for_element(engine_part))
    print(f"engine already shown: {validator.is_already_present(tree, engine_part)}")
    return snapshot


if __name__ == "__main__":
    snapshot = asyncio.run(main())
    #print mermaid graph of every invalid path
    print(snapshot.to_mermaid())
