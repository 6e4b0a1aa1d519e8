"""
Kubelog - Real-time Kubernetes Pod Log Viewer Backend.

Kubelog lets an operator browse a cluster's namespaces and pods and tail one or
more containers' logs in real time, switching between configured kubeconfig
contexts without restarting the viewer.

Key Features:
- Context listing and switching from kubeconfig (KUBECONFIG merge rules)
- Namespace and pod listing with readiness, restarts and age
- Any number of concurrent follow-mode log streams, each independently stopped
- Request/event surface over REST and a WebSocket
- Clean teardown of every stream on shutdown

Example:
    Basic usage:
    ```bash
    kubelog serve
    ```

    With a specific kubeconfig and starting context:
    ```bash
    kubelog serve --kubeconfig ~/.kube/staging --context staging-eu
    ```
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
