from langgraph.graph import StateGraph, START, END

from slotbook.wizard.state import WizardState
from slotbook.wizard import nodes
from slotbook.wizard.nodes import route_event

TRANSITION_NODES = sorted(set(nodes.EVENT_NODES.values()) | {"ignore_event_node"})


def create_wizard_graph():
    """
    Create and compile the LangGraph workflow for the booking wizard.

    Each invocation handles one event: the router picks a transition node,
    the node updates the state and lists the side effects to run, and the
    flow ends.
    """

    workflow = StateGraph(WizardState)

    for name in TRANSITION_NODES:
        workflow.add_node(name, getattr(nodes, name))

    # Route on the incoming event
    workflow.add_conditional_edges(
        START,
        route_event,
        {name: name for name in TRANSITION_NODES},
    )

    # All transition nodes end the flow
    for name in TRANSITION_NODES:
        workflow.add_edge(name, END)

    return workflow.compile()


# Create singleton instance
wizard_graph = create_wizard_graph()
